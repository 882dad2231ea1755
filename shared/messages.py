"""User-facing texts shared by the notification service and the API gateway."""

DEFAULT_LOW_STOCK_THRESHOLD = 10


def stock_message(available: int, low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> str:
    if available <= 0:
        return "This product is now out of stock!"
    if available <= low_stock_threshold:
        return f"Only {available} items left in stock!"
    return f"{available} items in stock."
