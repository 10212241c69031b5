"""Static HTML reports rendered with Jinja2."""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from convtest.config import ConvtestConfig
from convtest.core.results import TestOutcome

TEMPLATE_DIR = Path(__file__).parent / "templates"
SLOWEST_SHOWN = 10


def _with_outcome(results: list[dict], outcome: TestOutcome) -> list[dict]:
    return [r for r in results if r.get("outcome") == outcome.value]


def _by_container(results: list[dict]) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {}
    for r in results:
        grouped.setdefault(r.get("container") or "", []).append(r)
    return grouped


class ReportGenerator:
    """Writes a single-page report for one set of results."""

    def __init__(self, config: ConvtestConfig, base_dir: Path):
        """Initialize the report generator.

        Args:
            config: convtest configuration
            base_dir: Directory the configured output path is relative to
        """
        self.config = config
        self.base_dir = Path(base_dir)
        self.env = Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.env.filters.update(
            duration_format=self._format_duration,
            datetime_format=self._format_datetime,
            percentage=self._format_percentage,
        )

    @property
    def output_path(self) -> Path:
        report = self.config.report
        return self.base_dir / report.output_dir / report.filename

    def generate(self, results: dict[str, Any], diagnostics: Optional[list[str]] = None) -> Path:
        """Render ``results`` and return the path of the written report.

        Args:
            results: Results dictionary as built by ``ResultCollector.to_dict``
                or ``Database.get_run_results``
            diagnostics: Discovery problems to list alongside the results
        """
        html = self.env.get_template("report.html").render(
            **self._prepare_context(results, diagnostics or [])
        )
        path = self.output_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        return path

    def _prepare_context(self, results: dict[str, Any], diagnostics: list[str]) -> dict[str, Any]:
        all_results = results.get("results", [])
        passed = results.get("passed", 0)
        failed = results.get("failed", 0)
        # Skipped tests do not count against the pass rate
        executed = passed + failed

        return {
            "title": self.config.report.title,
            "project_name": self.config.project.name,
            "project_description": self.config.project.description,
            "generated_at": datetime.now(),
            "run_info": results.get("run", {}),
            "total": results.get("total", 0),
            "passed": passed,
            "failed": failed,
            "skipped": results.get("skipped", 0),
            "pass_rate": passed / executed * 100 if executed else 0,
            "duration_ms": results.get("duration_ms", 0),
            "failed_tests": _with_outcome(all_results, TestOutcome.FAILED),
            "skipped_tests": _with_outcome(all_results, TestOutcome.SKIPPED),
            "results_by_container": _by_container(all_results),
            "slowest_tests": sorted(
                all_results, key=lambda r: r.get("duration_ms", 0), reverse=True
            )[:SLOWEST_SHOWN],
            "diagnostics": diagnostics,
        }

    @staticmethod
    def _format_duration(ms: int) -> str:
        """250 -> ``250ms``, 1500 -> ``1.50s``, 125000 -> ``2m 5.0s``."""
        if ms < 1000:
            return f"{ms}ms"
        minutes, rest = divmod(ms, 60000)
        if not minutes:
            return f"{ms / 1000:.2f}s"
        return f"{minutes}m {rest / 1000:.1f}s"

    @staticmethod
    def _format_datetime(value: Any) -> str:
        """Format a datetime or ISO string; anything else is shown as-is."""
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value)
            except ValueError:
                return value
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%d %H:%M:%S")
        return str(value)

    @staticmethod
    def _format_percentage(value: float) -> str:
        return f"{value:.1f}%"
