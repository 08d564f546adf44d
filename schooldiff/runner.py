"""Report runner that loads school snapshots from YAML/JSON files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from .engine import ComparisonEngine
from .exceptions import SchoolDiffError, SnapshotLoadError
from .models import ComparisonReport, EngineConfig, ErrorResponse
from .renderer import MarkdownRenderer

logger = structlog.get_logger(__name__)


def load_file(path: str | Path) -> Any:
    """
    Load a YAML or JSON file.

    Raises:
        SnapshotLoadError: If the file is missing or cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        raise SnapshotLoadError(str(path), "file not found")

    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()

    # JSON is valid YAML
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SnapshotLoadError(str(path), f"parse error: {e}")


def load_config(path: Optional[str | Path]) -> EngineConfig:
    """Load an EngineConfig from a YAML/JSON file; no path gives the defaults."""
    if path is None:
        return EngineConfig()
    return EngineConfig.from_dict(load_file(path))


class ReportRunner:
    """
    Compares two school snapshot files and writes the reports.

    Usage:
        runner = ReportRunner("main.yaml", "baseline.yaml", "config.yaml")
        report = runner.run("reports/")

    Each Markdown section lands in ``<output_dir>/<section>.md`` and the
    full report in ``<output_dir>/report.json``.
    """

    def __init__(
        self,
        main_path: str,
        baseline_path: str,
        config_path: Optional[str] = None,
        engine_config: Optional[EngineConfig] = None
    ):
        """
        Initialize the runner.

        Args:
            main_path: Snapshot file of the school under review
            baseline_path: Snapshot file of the reference school
            config_path: Optional YAML/JSON engine config file
            engine_config: Config object, used when no config_path is given
        """
        self.main_path = Path(main_path)
        self.baseline_path = Path(baseline_path)
        self.config_path = Path(config_path) if config_path else None
        self._config = engine_config

    @property
    def config(self) -> EngineConfig:
        """Load and cache the engine config."""
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    def compare(self) -> ComparisonReport | ErrorResponse:
        """Load both snapshots and run the engine without writing anything."""
        main = load_file(self.main_path)
        baseline = load_file(self.baseline_path)
        if isinstance(main, dict):
            main.setdefault("name", self.main_path.stem)
        if isinstance(baseline, dict):
            baseline.setdefault("name", self.baseline_path.stem)
        return ComparisonEngine(self.config).compare(main, baseline)

    def run(self, output_dir: str | Path) -> ComparisonReport:
        """
        Run the comparison and write the reports.

        Args:
            output_dir: Directory for the generated files (created if missing)

        Returns:
            ComparisonReport

        Raises:
            SnapshotLoadError: If an input file cannot be read
            SchoolDiffError: If the engine returned an error response
        """
        result = self.compare()
        if isinstance(result, ErrorResponse):
            error = result.error or {}
            raise SchoolDiffError(f"{error.get('code')}: {error.get('message')}")

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        renderer = MarkdownRenderer(self.config.value_truncate_length)
        for section, markdown in renderer.render(result).items():
            (output_dir / f"{section}.md").write_text(markdown, encoding='utf-8')

        with open(output_dir / "report.json", 'w', encoding='utf-8') as f:
            json.dump(result.to_dict(), indent=2, fp=f, default=str)

        logger.info(
            "reports_written",
            output_dir=str(output_dir),
            entities=result.summary.entities_compared,
            field_exception_mismatches=result.summary.field_exception_mismatches
        )
        return result


def run_report(
    main_path: str,
    baseline_path: str,
    output_dir: str,
    config_path: Optional[str] = None
) -> ComparisonReport:
    """
    Compare two snapshot files and write the reports.

        from schooldiff.runner import run_report
        report = run_report("main.yaml", "baseline.yaml", "reports/")
    """
    return ReportRunner(main_path, baseline_path, config_path).run(output_dir)
