"""
Analysis Report

Tabular view and summary statistics of withdrawal analysis results:
- Status counts and total overpayment
- Per-staff errors and processing times
- Status / text filtering for the error report page
"""

from typing import Optional, Sequence

import pandas as pd

from validation.models import (
    AnalysisResult,
    STATUS_BONUS_YOK,
    STATUS_DOGRU,
    STATUS_HATA,
    STATUS_HESAPLAMA_HATASI,
    STATUS_KURAL_YOK,
)

REPORT_COLUMNS = [
    "withdrawal_id",
    "customer_id",
    "staff_name",
    "request_date",
    "payment_date",
    "amount",
    "deposit_amount",
    "bonus_name",
    "bonus_amount",
    "rule_name",
    "rule_source",
    "max_allowed",
    "is_overpayment",
    "overpayment_amount",
    "processing_time_minutes",
    "status",
]

UNKNOWN_STAFF = "Bilinmiyor"


def results_to_dataframe(results: Sequence[AnalysisResult]) -> pd.DataFrame:
    """One row per analyzed withdrawal."""
    rows = []
    for r in results:
        rule_name = None
        if r.bonus_rule is not None:
            rule_name = r.bonus_rule.bonus_name
        elif r.parsed_rule is not None and r.rule_source is not None:
            rule_name = r.parsed_rule.formula or r.parsed_rule.calculation_type

        rows.append({
            "withdrawal_id": r.withdrawal.id,
            "customer_id": r.withdrawal.customer_id,
            "staff_name": r.withdrawal.staff_name or UNKNOWN_STAFF,
            "request_date": r.withdrawal.request_date,
            "payment_date": r.withdrawal.payment_date,
            "amount": r.withdrawal.amount,
            "deposit_amount": r.deposit.amount if r.deposit else None,
            "bonus_name": r.bonus.bonus_name if r.bonus else None,
            "bonus_amount": r.bonus.amount if r.bonus else None,
            "rule_name": rule_name,
            "rule_source": r.rule_source,
            "max_allowed": r.max_allowed,
            "is_overpayment": r.is_overpayment,
            "overpayment_amount": r.overpayment_amount,
            "processing_time_minutes": r.processing_time_minutes,
            "status": r.status,
        })

    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def aggregate_by_staff(df: pd.DataFrame) -> pd.DataFrame:
    """Aggregate analysis results by staff member.

    Args:
        df: DataFrame from results_to_dataframe.

    Returns:
        One row per staff with withdrawal count, error count, overpaid total
        and processing times (only paid withdrawals count towards time).
    """
    if "staff_name" not in df.columns:
        raise ValueError("DataFrame must have 'staff_name' column")

    if df.empty:
        return pd.DataFrame(columns=[
            "staff_name", "withdrawal_count", "error_count", "total_overpaid",
            "total_time", "timed_count", "avg_time",
        ])

    df = df.copy()
    df["_timed"] = df["processing_time_minutes"] > 0
    df["_time"] = df["processing_time_minutes"].where(df["_timed"], 0)

    result = df.groupby("staff_name").agg(
        withdrawal_count=("withdrawal_id", "size"),
        error_count=("is_overpayment", "sum"),
        total_overpaid=("overpayment_amount", "sum"),
        total_time=("_time", "sum"),
        timed_count=("_timed", "sum"),
    ).reset_index()

    result["error_count"] = result["error_count"].astype(int)
    result["timed_count"] = result["timed_count"].astype(int)
    result["total_overpaid"] = result["total_overpaid"].round(2)
    result["avg_time"] = (
        result["total_time"] / result["timed_count"].where(result["timed_count"] > 0)
    ).round().fillna(0).astype(int)

    return result.sort_values("error_count", ascending=False).reset_index(drop=True)


def get_analysis_summary(results: Sequence[AnalysisResult]) -> dict:
    """Summary of analysis results for the dashboard header.

    Returns:
        Summary dictionary with status counts, totals and per-staff stats.
    """
    total = len(results)
    counts = {status: 0 for status in (
        STATUS_HATA, STATUS_DOGRU, STATUS_BONUS_YOK, STATUS_KURAL_YOK, STATUS_HESAPLAMA_HATASI,
    )}
    for r in results:
        counts[r.status] += 1

    total_overpaid = round(sum(r.overpayment_amount for r in results if r.is_overpayment), 2)

    timed = [r.processing_time_minutes for r in results if r.processing_time_minutes > 0]
    avg_processing_time = round(sum(timed) / len(timed)) if timed else 0

    staff_errors: dict[str, dict] = {}
    staff_times: dict[str, dict] = {}
    for r in results:
        staff = r.withdrawal.staff_name or UNKNOWN_STAFF
        if r.is_overpayment:
            entry = staff_errors.setdefault(staff, {"count": 0, "amount": 0.0})
            entry["count"] += 1
            entry["amount"] = round(entry["amount"] + r.overpayment_amount, 2)
        if r.processing_time_minutes > 0:
            entry = staff_times.setdefault(staff, {"total_time": 0, "count": 0, "avg_time": 0})
            entry["total_time"] += r.processing_time_minutes
            entry["count"] += 1

    for entry in staff_times.values():
        entry["avg_time"] = round(entry["total_time"] / entry["count"])

    hata = counts[STATUS_HATA]
    return {
        "total": total,
        "hata": hata,
        "dogru": counts[STATUS_DOGRU],
        "bonus_yok": counts[STATUS_BONUS_YOK],
        "kural_yok": counts[STATUS_KURAL_YOK],
        "hesaplama_hatasi": counts[STATUS_HESAPLAMA_HATASI],
        "total_overpaid": total_overpaid,
        "avg_processing_time": avg_processing_time,
        "staff_errors": staff_errors,
        "staff_processing_times": staff_times,
        "status": "✓ Tüm çekimler limit içinde" if hata == 0 else f"⚠ {hata} çekimde fazla ödeme",
    }


def filter_results(
    results: Sequence[AnalysisResult],
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> list[AnalysisResult]:
    """Filter by status and free-text search (customer, bonus or rule name)."""
    needle = search.strip().lower() if search else ""

    filtered = []
    for r in results:
        if status and r.status != status:
            continue
        if needle:
            haystack = [r.withdrawal.customer_id]
            if r.bonus is not None:
                haystack.append(r.bonus.bonus_name)
            if r.bonus_rule is not None:
                haystack.append(r.bonus_rule.bonus_name)
            if not any(needle in value.lower() for value in haystack):
                continue
        filtered.append(r)
    return filtered
