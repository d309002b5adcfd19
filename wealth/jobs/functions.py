"""
Inngest Functions

Five functions served at /api/inngest:

| id                              | trigger                                   |
|---------------------------------|-------------------------------------------|
| process-recurring-transaction   | event transaction.recurring.process       |
| trigger-recurring-transactions  | cron 0 0 * * * (daily)                    |
| generate-monthly-reports        | cron 0 0 1 * * (first of the month)       |
| check-budget-alerts             | cron 0 */6 * * * (every six hours)        |
| cleanup-old-data                | cron 0 3 * * 0 (Sundays 03:00)            |

Each function is a thin wrapper: the work lives in JobTasks and runs
inside `step.run` so Inngest memoizes finished steps across retries.
"""

from datetime import timedelta
from typing import Any
from uuid import UUID

import inngest

from wealth.config import get_settings
from wealth.jobs.client import FUNCTION_RETRIES, RECURRING_PROCESS_EVENT
from wealth.jobs.tasks import JobTasks


def create_functions(client: inngest.Inngest, tasks: JobTasks) -> list[inngest.Function]:
    """Register the job functions on `client`."""
    settings = get_settings().inngest

    @client.create_function(
        fn_id="process-recurring-transaction",
        name="Process Recurring Transaction",
        trigger=inngest.TriggerEvent(event=RECURRING_PROCESS_EVENT),
        throttle=inngest.Throttle(
            limit=settings.recurring_throttle_limit,
            period=timedelta(minutes=1),
            key="event.data.userId",
        ),
        retries=FUNCTION_RETRIES,
    )
    async def process_recurring_transaction(
        ctx: inngest.Context,
        step: inngest.Step,
    ) -> dict[str, Any]:
        data = ctx.event.data
        if not data.get("transactionId") or not data.get("userId"):
            ctx.logger.error("Invalid event data: %s", data)
            return {"error": "Missing required event data"}

        async def process() -> dict[str, Any]:
            created = await tasks.process_recurring_transaction(
                UUID(str(data["transactionId"])),
                UUID(str(data["userId"])),
            )
            return {"created": str(created.id) if created else None}

        return await step.run("process-transaction", process)

    @client.create_function(
        fn_id="trigger-recurring-transactions",
        name="Trigger Recurring Transactions",
        trigger=inngest.TriggerCron(cron="0 0 * * *"),
        retries=FUNCTION_RETRIES,
    )
    async def trigger_recurring_transactions(
        ctx: inngest.Context,
        step: inngest.Step,
    ) -> dict[str, Any]:
        payloads = await step.run("fetch-recurring-transactions", tasks.trigger_recurring_transactions)
        if payloads:
            await step.send_event(
                "trigger-recurring-transactions",
                [inngest.Event(name=RECURRING_PROCESS_EVENT, data=payload) for payload in payloads],
            )
        return {"triggered": len(payloads)}

    @client.create_function(
        fn_id="generate-monthly-reports",
        name="Generate Monthly Reports",
        trigger=inngest.TriggerCron(cron="0 0 1 * *"),
        retries=FUNCTION_RETRIES,
    )
    async def generate_monthly_reports(
        ctx: inngest.Context,
        step: inngest.Step,
    ) -> dict[str, Any]:
        sent = await step.run("generate-reports", tasks.generate_monthly_reports)
        return {"processed": sent}

    @client.create_function(
        fn_id="check-budget-alerts",
        name="Check Budget Alerts",
        trigger=inngest.TriggerCron(cron="0 */6 * * *"),
        retries=FUNCTION_RETRIES,
    )
    async def check_budget_alerts(
        ctx: inngest.Context,
        step: inngest.Step,
    ) -> dict[str, Any]:
        sent = await step.run("check-budgets", tasks.check_budget_alerts)
        return {"alerts": sent}

    @client.create_function(
        fn_id="cleanup-old-data",
        name="Cleanup Old Data",
        trigger=inngest.TriggerCron(cron="0 3 * * 0"),
        retries=FUNCTION_RETRIES,
    )
    async def cleanup_old_data(
        ctx: inngest.Context,
        step: inngest.Step,
    ) -> dict[str, Any]:
        return await step.run("cleanup", tasks.cleanup_old_data)

    return [
        process_recurring_transaction,
        trigger_recurring_transactions,
        generate_monthly_reports,
        check_budget_alerts,
        cleanup_old_data,
    ]
