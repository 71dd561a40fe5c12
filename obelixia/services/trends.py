"""Moving annual trend (TAM) series synthesized from annual statements.

Only annual figures are stored, so monthly values are spread with a fixed
seasonal distribution. The distribution sums to 0.995, not 1; monthly
shares are used exactly as listed.
"""

from __future__ import annotations

MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

MONTHLY_DISTRIBUTION = (0.07, 0.08, 0.09, 0.08, 0.085, 0.08, 0.075, 0.065, 0.09, 0.10, 0.095, 0.085)

# category -> metric keys, in display order
CATEGORIES: dict[str, tuple[str, ...]] = {
    "ventas_ingresos": ("ventas", "ing_financieros", "ing_extraord", "otros_ingresos", "ing_totales"),
    "compras_gastos": (
        "compras", "gastos_personal", "gtos_financieros", "trab_sum_exter", "gastos_diversos",
        "gastos_extraord", "amortizaciones", "provisiones", "gastos_totales",
    ),
    "activo_pasivo": (
        "activo_fijo", "existencias", "realizable", "tesoreria", "deudas_lgo_pzo", "deudas_cto_pzo",
    ),
}

BALANCE_CATEGORY = "activo_pasivo"

# Income statement metric -> fields summed
INCOME_FIELDS: dict[str, tuple[str, ...]] = {
    "ventas": ("net_revenue",),
    "ing_financieros": ("financial_income",),
    "otros_ingresos": ("other_income",),
    "ing_totales": ("net_revenue", "other_income", "financial_income"),
    "compras": ("raw_materials",),
    "gastos_personal": ("personnel_expenses",),
    "gtos_financieros": ("financial_expenses",),
    "gastos_diversos": ("other_expenses",),
    "amortizaciones": ("depreciation",),
    "provisiones": ("provisions",),
    "gastos_totales": ("raw_materials", "personnel_expenses", "other_expenses", "depreciation", "provisions"),
}

BALANCE_FIELDS: dict[str, tuple[str, ...]] = {
    "activo_fijo": ("tangible_assets", "intangible_assets"),
    "existencias": ("inventory",),
    "realizable": ("trade_receivables",),
    "tesoreria": ("cash_equivalents",),
    "deudas_lgo_pzo": ("long_term_debts",),
    "deudas_cto_pzo": ("short_term_debts",),
}


class UnknownCategory(ValueError):
    pass


def _sum_fields(row: dict | None, fields: tuple[str, ...]) -> float:
    if not row:
        return 0.0
    return float(sum(row.get(f) or 0 for f in fields))


def income_metric(statement: dict | None, metric: str) -> float:
    """Annual value of an income-statement metric; unknown metrics are 0."""
    return _sum_fields(statement, INCOME_FIELDS.get(metric, ()))


def balance_metric(balance_sheets: list[dict], fiscal_year: int | None, metric: str) -> float:
    """Annual value of a balance-sheet metric for ``fiscal_year``."""
    sheet = next((b for b in balance_sheets if b.get("fiscal_year") == fiscal_year), None)
    return _sum_fields(sheet, BALANCE_FIELDS.get(metric, ()))


def moving_annual_trend(
    income_statements: list[dict],
    balance_sheets: list[dict],
    category: str,
    metric: str,
) -> list[dict]:
    """Twelve monthly points for the latest fiscal year versus the previous one.

    Each point carries the month's current and previous-year value, the
    running accumulation, the TAM (accumulated current months plus the
    remaining share of the previous year) and the year-over-year variation.
    """
    if category not in CATEGORIES:
        raise UnknownCategory(f"Unknown category: {category}")

    ordered = sorted(income_statements, key=lambda s: s["fiscal_year"], reverse=True)
    if not ordered:
        return []
    current = ordered[0]
    previous = ordered[1] if len(ordered) > 1 else None

    if category == BALANCE_CATEGORY:
        annual_current = balance_metric(balance_sheets, current["fiscal_year"], metric)
        annual_previous = balance_metric(
            balance_sheets, previous["fiscal_year"] if previous else None, metric
        )
    else:
        annual_current = income_metric(current, metric)
        annual_previous = income_metric(previous, metric)

    points = []
    accumulated = 0.0
    distributed = 0.0
    for month, share in zip(MONTHS, MONTHLY_DISTRIBUTION):
        current_value = annual_current * share
        previous_value = annual_previous * share
        accumulated += current_value
        distributed += share

        tam = accumulated + annual_previous * (1 - distributed)
        variation = (
            (current_value - previous_value) / abs(previous_value) * 100 if previous_value else 0.0
        )
        points.append({
            "month": f"{month} {current['fiscal_year']}",
            "month_short": month[:3],
            "current": current_value,
            "previous": previous_value,
            "accumulated": accumulated,
            "tam": tam,
            "variation": variation,
        })
    return points
