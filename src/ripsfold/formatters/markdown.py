"""Markdown output formatter for audit dashboards."""

from __future__ import annotations

from ripsfold.models import Dashboard


class MarkdownWriter:
    """Builds markdown output incrementally."""

    def __init__(self):
        self._lines: list[str] = []

    def w(self, line: str = "") -> None:
        self._lines.append(line)

    def heading(self, text: str, level: int = 2) -> None:
        self.w(f"{'#' * level} {text}")
        self.w()

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        self.w("| " + " | ".join(headers) + " |")
        self.w("|" + "|".join("---" for _ in headers) + "|")
        for row in rows:
            self.w("| " + " | ".join(_cell(c) for c in row) + " |")
        self.w()

    def separator(self) -> None:
        self.w("---")
        self.w()

    def text(self) -> str:
        return "\n".join(self._lines)


def _cell(value) -> str:
    # pipes and newlines would break the table row
    return str(value).replace("|", "\\|").replace("\n", "<br>")


def format_dashboard(dashboard: Dashboard, top_n: int = 20, generated: str = "") -> str:
    """Format a dashboard as a printable markdown report."""
    md = MarkdownWriter()
    stats = dashboard.stats

    md.heading("RIPS Audit Report", level=1)
    if generated:
        md.w(f"*Generated: {generated}*")
        md.w()

    md.heading("Overview", level=2)
    md.w(f"- **Service records**: {stats.total_records}")
    md.w(f"- **Registered patients**: {stats.total_patients}")
    md.w(f"- **Top CUPS**: {stats.top_code} {stats.top_code_name} ({stats.top_code_count})")
    md.w(
        f"- **Top patient**: {stats.top_patient_id} {stats.top_patient_name} "
        f"({stats.top_patient_count})"
    )
    md.w(f"- **Duplicate groups**: {len(dashboard.duplicates)}")
    md.w()

    if dashboard.chart:
        md.separator()
        md.heading("Goals vs Executed", level=2)
        md.table(
            ["Service Type", "Target", "Executed", "Compliance", "Status"],
            [[p.service_type, p.target, p.executed, f"{p.capped_percent}%", p.color]
             for p in dashboard.chart],
        )

    if dashboard.code_ranking:
        md.separator()
        md.heading(f"Top {top_n} CUPS", level=2)
        md.table(
            ["CUPS", "Name", "Type", "Count", "Top Patient", "Patient Count", "Dates"],
            [[r.service_code, r.service_name, r.service_type, r.count, r.top_patient_id,
              r.top_patient_count, r.top_patient_dates]
             for r in dashboard.code_ranking[:top_n]],
        )

    if dashboard.patient_ranking:
        md.separator()
        md.heading(f"Top {top_n} Patients", level=2)
        md.table(
            ["Patient", "Name", "Sex", "Age", "Age Group", "Services"],
            [[p.patient_id, p.full_name, p.sex, p.age, p.bracket, p.count]
             for p in dashboard.patient_ranking[:top_n]],
        )

    if dashboard.duplicates:
        md.separator()
        md.heading("Duplicate Services", level=2)
        md.w("*Same patient, CUPS code and date recorded more than once:*")
        md.w()
        md.table(
            ["Patient", "CUPS", "Name", "Date", "Copies"],
            [[d.patient_id, d.service_code, d.record.service_name, d.service_date, d.count]
             for d in dashboard.duplicates],
        )

    return md.text()
