"""Application stylesheet."""

from __future__ import annotations

from ..config import ACCENT, DARK_BG, DARK_CARD, DARK_ELEV, TEXT


def style() -> str:
    return f"""
    QWidget {{ background-color: {DARK_BG}; color: {TEXT}; font-size: 13px; }}
    QGroupBox {{ background-color: {DARK_CARD}; border-radius: 10px; margin-top: 14px; padding: 8px; }}
    QGroupBox::title {{ subcontrol-origin: margin; left: 10px; padding: 0 4px; }}
    QPlainTextEdit, QLineEdit {{ background-color: {DARK_ELEV}; border: 1px solid #3a3c41; border-radius: 6px; }}
    QPushButton {{ background-color: {ACCENT}; border: none; border-radius: 6px; padding: 6px 14px; }}
    QPushButton:disabled {{ background-color: #4e5058; }}
    QLabel#status {{ font-weight: bold; }}
    """
