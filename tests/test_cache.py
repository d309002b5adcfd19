"""
Tests for path-keyed cache invalidation.
"""

from wealth.cache import register_path_cache, revalidate_path, unregister_path_cache


class TestRevalidatePath:

    def test_exact_path(self):
        calls = []
        register_path_cache("/dashboard", lambda: calls.append("dashboard"))

        assert revalidate_path("/dashboard") == 1
        assert calls == ["dashboard"]

    def test_unregistered_path_is_noop(self):
        assert revalidate_path("/nowhere") == 0

    def test_trailing_slash(self):
        calls = []
        register_path_cache("/dashboard", lambda: calls.append(1))
        revalidate_path("/dashboard/")
        assert calls == [1]

    def test_param_pattern_matches_concrete_path(self):
        """A loader registered for /account/[id] hears about any account."""
        calls = []
        register_path_cache("/account/[id]", lambda: calls.append(1))

        assert revalidate_path("/account/3f2b") == 1
        assert revalidate_path("/dashboard") == 0
        assert calls == [1]

    def test_pattern_revalidation_hits_concrete_registrations(self):
        calls = []
        register_path_cache("/account/abc", lambda: calls.append("abc"))
        register_path_cache("/account/def", lambda: calls.append("def"))

        assert revalidate_path("/account/[id]") == 2
        assert sorted(calls) == ["abc", "def"]

    def test_nested_paths_do_not_match(self):
        calls = []
        register_path_cache("/dashboard", lambda: calls.append(1))
        assert revalidate_path("/dashboard/insights") == 0

    def test_same_callback_runs_once(self):
        calls = []

        def clear():
            calls.append(1)

        register_path_cache("/dashboard", clear)
        register_path_cache("/dashboard", clear)
        register_path_cache("/account/[id]", clear)

        revalidate_path("/dashboard")
        revalidate_path("/account/1")

        assert calls == [1, 1]

    def test_unregister(self):
        calls = []

        def clear():
            calls.append(1)

        register_path_cache("/dashboard", clear)
        unregister_path_cache("/dashboard", clear)
        unregister_path_cache("/dashboard", clear)

        assert revalidate_path("/dashboard") == 0
        assert calls == []

    def test_failing_callback_does_not_stop_others(self):
        calls = []

        def broken():
            raise RuntimeError("cache backend gone")

        register_path_cache("/dashboard", broken)
        register_path_cache("/dashboard", lambda: calls.append(1))

        assert revalidate_path("/dashboard") == 2
        assert calls == [1]
