"""
Türkçe Sayı ve Tarih Formatlama Yardımcıları

Hesaplama loglarında ve raporlarda kullanılan format:
- Bin ayırıcı: nokta (.)
- Ondalık ayırıcı: virgül (,)
- Tarih: GG.AA.YYYY SS:DD:ss

Örnek: 1.234.567,89 ₺
"""

import math
from datetime import datetime
from typing import Optional


def format_turkish_currency(value: Optional[float], symbol: str = "₺", decimals: int = 2) -> str:
    """
    Sayıyı Türkçe para birimi formatına çevir.

    Examples:
        >>> format_turkish_currency(1234567.89)
        '1.234.567,89 ₺'
        >>> format_turkish_currency(float("inf"))
        'Sınırsız'
    """
    if value is None:
        return "-"
    if math.isinf(value):
        return "Sınırsız"

    is_negative = value < 0
    formatted = f"{abs(value):,.{decimals}f}"
    # Python: 1,234,567.89 → Türkçe: 1.234.567,89
    formatted = formatted.replace(",", "X").replace(".", ",").replace("X", ".")

    if is_negative:
        formatted = "-" + formatted
    return f"{formatted} {symbol}"


def tl(value: Optional[float]) -> str:
    """Kısa yol: format_turkish_currency(value)."""
    return format_turkish_currency(value)


def format_turkish_date(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%d.%m.%Y %H:%M:%S")

