# fxjournal/utils.py
import base64
import csv
import io
from typing import Iterable

from .config import settings

CSV_COLUMNS = [
    "id", "account_id", "trade_date", "instrument", "position", "lot_size",
    "entry_price", "exit_price", "stop_loss", "take_profit", "outcome", "pnl",
    "strategy", "notes",
]


class ScreenshotError(ValueError):
    pass


def encode_screenshot(file_content: bytes, content_type: str, max_bytes: int = None) -> str:
    """Turn an uploaded image into a data URL for storage alongside the trade"""
    max_bytes = settings.max_upload_bytes if max_bytes is None else max_bytes

    if not content_type or not content_type.startswith("image/"):
        raise ScreenshotError("Screenshot must be an image file")
    if len(file_content) > max_bytes:
        raise ScreenshotError(f"Screenshot is larger than {max_bytes // (1024 * 1024)} MB")

    encoded = base64.b64encode(file_content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def format_currency(value: float) -> str:
    """USD formatting used in the templates: -$1,234.50"""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def trades_to_csv(trades: Iterable) -> str:
    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(CSV_COLUMNS)
    for t in trades:
        w.writerow([
            t.id,
            t.account_id,
            t.trade_date,
            t.instrument,
            t.position.value,
            t.lot_size,
            t.entry_price,
            t.exit_price,
            t.stop_loss,
            t.take_profit,
            t.outcome.value,
            t.pnl,
            t.strategy,
            (t.notes or "").replace("\n", " ").strip(),
        ])
    return out.getvalue()
