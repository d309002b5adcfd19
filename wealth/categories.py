"""
Transaction Categories

The default category table and the rules that turn a scanned receipt
into transaction form values.

DESIGN DECISION: Mapping is deterministic keyword matching. The vision
model proposes free text ("Restaurant", "Shell Station"); this module
decides which category id that means, so the model never picks ids.
"""

import re
from datetime import datetime
from typing import Any, Optional, Union

import structlog

from wealth.agents.receipts import UNPARSEABLE_MESSAGE, UNREADABLE_MESSAGE
from wealth.models.finance import Category, ParsedReceipt, TransactionType


logger = structlog.get_logger(__name__)


DEFAULT_CATEGORIES: list[Category] = [
    # Income
    Category(id="salary", name="Salary", type=TransactionType.INCOME, color="#22c55e", icon="Wallet"),
    Category(id="freelance", name="Freelance", type=TransactionType.INCOME, color="#06b6d4", icon="Laptop"),
    Category(id="investments", name="Investments", type=TransactionType.INCOME, color="#6366f1", icon="TrendingUp"),
    Category(id="business", name="Business", type=TransactionType.INCOME, color="#ec4899", icon="Building"),
    Category(id="rental", name="Rental", type=TransactionType.INCOME, color="#f59e0b", icon="Home"),
    Category(id="other-income", name="Other Income", type=TransactionType.INCOME, color="#64748b", icon="Plus"),
    # Expense
    Category(
        id="housing", name="Housing", type=TransactionType.EXPENSE, color="#ef4444", icon="Home",
        subcategories=["Rent", "Mortgage", "Property Tax", "Maintenance"],
    ),
    Category(
        id="transportation", name="Transportation", type=TransactionType.EXPENSE, color="#f97316", icon="Car",
        subcategories=["Fuel", "Public Transport", "Maintenance", "Parking"],
    ),
    Category(id="groceries", name="Groceries", type=TransactionType.EXPENSE, color="#84cc16", icon="Shopping"),
    Category(
        id="utilities", name="Utilities", type=TransactionType.EXPENSE, color="#06b6d4", icon="Zap",
        subcategories=["Electricity", "Water", "Gas", "Internet", "Phone"],
    ),
    Category(
        id="entertainment", name="Entertainment", type=TransactionType.EXPENSE, color="#8b5cf6", icon="Film",
        subcategories=["Movies", "Games", "Streaming Services"],
    ),
    Category(id="food", name="Food", type=TransactionType.EXPENSE, color="#f43f5e", icon="UtensilsCrossed"),
    Category(
        id="shopping", name="Shopping", type=TransactionType.EXPENSE, color="#ec4899", icon="ShoppingBag",
        subcategories=["Clothing", "Electronics", "Home Goods"],
    ),
    Category(
        id="healthcare", name="Healthcare", type=TransactionType.EXPENSE, color="#14b8a6", icon="HeartPulse",
        subcategories=["Medical", "Dental", "Pharmacy", "Insurance"],
    ),
    Category(
        id="education", name="Education", type=TransactionType.EXPENSE, color="#6366f1", icon="GraduationCap",
        subcategories=["Tuition", "Books", "Courses"],
    ),
    Category(
        id="personal", name="Personal Care", type=TransactionType.EXPENSE, color="#d946ef", icon="Smile",
        subcategories=["Haircut", "Gym", "Beauty"],
    ),
    Category(id="travel", name="Travel", type=TransactionType.EXPENSE, color="#0ea5e9", icon="Plane"),
    Category(
        id="insurance", name="Insurance", type=TransactionType.EXPENSE, color="#64748b", icon="Shield",
        subcategories=["Life", "Home", "Vehicle"],
    ),
    Category(id="gifts", name="Gifts & Donations", type=TransactionType.EXPENSE, color="#f472b6", icon="Gift"),
    Category(
        id="bills", name="Bills & Fees", type=TransactionType.EXPENSE, color="#fb7185", icon="Receipt",
        subcategories=["Bank Fees", "Late Fees", "Service Charges"],
    ),
    Category(id="other-expense", name="Other Expenses", type=TransactionType.EXPENSE, color="#94a3b8", icon="MoreHorizontal"),
]

# Receipt text keyword -> category name fragment. Order matters: the
# first family whose keywords appear in the text wins.
CATEGORY_HEURISTICS: dict[str, list[str]] = {
    "grocery": ["groc", "super", "market", "store"],
    "food": ["restaurant", "cafe", "dine", "pizza", "burger", "food", "bistro"],
    "transport": ["uber", "ola", "taxi", "bus", "metro", "train", "transport"],
    "fuel": ["petrol", "diesel", "fuel", "gas station", "shell", "bp"],
    "salary": ["salary", "payroll", "pay"],
    "shopping": ["amazon", "flipkart", "myntra", "shop", "shopping", "store"],
    "bills": ["electric", "water", "internet", "bill", "utility"],
    "health": ["pharmacy", "hospital", "clinic", "medic", "doctor"],
    "entertainment": ["cinema", "movie", "theatre", "netflix", "prime", "theater"],
    "uncategorized": ["uncategorized", "uncat", "misc", "others", "other"],
}

# Keys a parsed receipt may use for the merchant, in preference order
MERCHANT_KEYS = ("merchantName", "merchant", "vendor", "name", "store")

PLACEHOLDER_DESCRIPTION = "receipt parsed"


class ReceiptNotReadableError(Exception):
    """The scanned receipt carries nothing that could fill the form."""
    pass


def get_category(category_id: str, categories: Optional[list[Category]] = None) -> Optional[Category]:
    for category in categories or DEFAULT_CATEGORIES:
        if category.id == category_id:
            return category
    return None


def categories_for_type(
    transaction_type: TransactionType,
    categories: Optional[list[Category]] = None,
) -> list[Category]:
    return [c for c in (categories or DEFAULT_CATEGORIES) if c.type == transaction_type]


def map_parsed_category_to_id(
    text: Optional[str],
    categories: list[Category],
    target_type: Optional[TransactionType] = None,
) -> Optional[str]:
    """
    Resolve free category text to a category id.

    Tries, in order: exact name, containment either way, the keyword
    heuristics, the first category of `target_type`, an uncategorized
    category, and finally the first category.
    """
    if not text:
        return None
    s = str(text).strip().lower()

    for category in categories:
        if category.name.lower() == s:
            return category.id

    for category in categories:
        name = category.name.lower()
        if s in name or name in s:
            return category.id

    for family, keywords in CATEGORY_HEURISTICS.items():
        if not any(kw in s for kw in keywords):
            continue
        for category in categories:
            name = category.name.lower()
            if family in name or any(kw in name for kw in keywords):
                return category.id

    if target_type is not None:
        for category in categories:
            if category.type == target_type:
                return category.id

    for category in categories:
        name = category.name.lower()
        if name in ("uncategorized", "uncat") or "uncategor" in name:
            return category.id

    return categories[0].id if categories else None


def _format_amount(amount: Any) -> Optional[str]:
    if amount is None:
        return None
    if isinstance(amount, (int, float)):
        text = str(int(amount)) if float(amount).is_integer() else str(amount)
    else:
        text = re.sub(r"[^\d.-]", "", str(amount))
    if not text or text in ("0", "null"):
        return None
    return text


def parse_receipt_date(value: Any) -> Optional[datetime]:
    """
    Parse the date formats receipts come back with: ISO, an ISO date
    embedded in other text, or dd/mm/yyyy (also dd-mm-yyyy).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()

    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass

    iso = re.search(r"\d{4}-\d{2}-\d{2}", text)
    if iso:
        try:
            return datetime.strptime(iso.group(0), "%Y-%m-%d")
        except ValueError:
            pass

    alt = re.search(r"(\d{1,2})[/-](\d{1,2})[/-](\d{4})", text)
    if alt:
        day, month, year = (int(part) for part in alt.groups())
        try:
            return datetime(year, month, day)
        except ValueError:
            return None

    return None


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def apply_parsed_receipt(
    parsed: Union[ParsedReceipt, dict[str, Any]],
    form: dict[str, Any],
    categories: Optional[list[Category]] = None,
) -> dict[str, Any]:
    """
    Merge a scanned receipt into transaction form values.

    Only empty fields are filled; anything the user already typed wins.
    Returns a new dict, `form` is left untouched.

    Raises:
        ReceiptNotReadableError: If the receipt has no amount, merchant or
            description, or is the null-filled result of a failed scan
    """
    data = parsed.to_response() if isinstance(parsed, ParsedReceipt) else dict(parsed or {})
    categories = categories or DEFAULT_CATEGORIES

    merchant = next((data[k] for k in MERCHANT_KEYS if data.get(k)), None)
    if not data.get("amount") and not merchant:
        if not data.get("description"):
            raise ReceiptNotReadableError("Receipt image not readable. Try with better lighting.")
        if data["description"] in (UNREADABLE_MESSAGE, UNPARSEABLE_MESSAGE):
            raise ReceiptNotReadableError(data["description"])

    result = dict(form)
    target_type = result.get("type")
    if isinstance(target_type, str) and target_type:
        target_type = TransactionType(target_type)
    # Only offer categories the form can show for this type
    candidates = categories_for_type(target_type, categories) if target_type else categories

    if _is_empty(result.get("amount")):
        amount = _format_amount(data.get("amount"))
        if amount:
            result["amount"] = amount

    if _is_empty(result.get("description")):
        description = data.get("description") or merchant
        if description and str(description).lower() != PLACEHOLDER_DESCRIPTION:
            result["description"] = str(description)

    if _is_empty(result.get("date")):
        parsed_date = parse_receipt_date(data.get("date"))
        if parsed_date is not None:
            result["date"] = parsed_date

    if _is_empty(result.get("category")):
        category_id = None
        category_text = data.get("category")
        if category_text and str(category_text).lower() != "uncategorized":
            category_id = map_parsed_category_to_id(category_text, candidates, target_type)

        if not category_id:
            source = str(data.get("merchantName") or data.get("description") or merchant or "")
            if source and source != "Receipt parsed":
                category_id = map_parsed_category_to_id(source, candidates, target_type)

        if not category_id:
            category_id = map_parsed_category_to_id("uncategorized", candidates, target_type)

        if category_id:
            result["category"] = category_id

    logger.info(
        "receipt_applied_to_form",
        filled=[k for k in ("amount", "description", "date", "category") if result.get(k) != form.get(k)],
    )
    return result
