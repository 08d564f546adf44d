"""Tests for the comparison engine, Markdown rendering and the report runner."""

import json

import pytest
import yaml

from schooldiff import (
    ComparisonEngine,
    ComparisonReport,
    ErrorResponse,
    EngineConfig,
    MarkdownRenderer,
    ReportRunner,
    SchoolSnapshot,
    DiffStatus,
    EntityComparisonStatus,
    SelectionMethod,
    SchoolDiffError,
    SnapshotLoadError,
    ConfigError,
    compare,
)
from schooldiff.models import SectionError, TemplateComparison
from schooldiff.runner import load_config, load_file


def make_main():
    return {
        "name": "Main University",
        "environment": "staging",
        "formatters": {"courses": True, "rooms": True},
        "mergeSettings": {
            "courses": {
                "enabled": True,
                "conflictHandlingMethod": "resolveAsCoursedog",
                "fieldExceptions": [
                    {
                        "conflictHandlingMethod": "alwaysInstitution",
                        "fields": [{"path": "description", "label": "Description"}]
                    }
                ],
                "stepsToExecute": {"createNew": True, "updateExisting": True}
            }
        },
        "fieldExceptionMaps": {
            "courses": {"name": "resolveAsCoursedog", "description": "resolveAsCoursedog"}
        },
        "courseTemplate": {
            "courseTemplate": {
                "questions": {
                    "name": {"required": True, "label": "Course Name"},
                    "extra": {"required": True},
                    "credits": {"config": {"fields": {"creditHours": {"required": True}}}}
                }
            }
        },
        "integrationSettings": {"sync": {"enabled": True}}
    }


def make_baseline():
    return {
        "name": "Baseline College",
        "environment": "production",
        "mergeSettings": {
            "courses": {
                "enabled": True,
                "conflictHandlingMethod": "resolveAsCoursedog",
                "fieldExceptions": [],
                "stepsToExecute": {"createNew": True, "updateExisting": False}
            }
        },
        "fieldExceptionMaps": {
            "courses": {
                "name": "resolveAsCoursedog",
                "description": "resolveAsCoursedog",
                "subjectCode": "alwaysInstitution"
            }
        },
        "courseTemplate": {
            "courseTemplate": {
                "questions": {
                    "name": {"required": False, "label": "Course Name"},
                    "credits": {"config": {"fields": {"creditHours": {"required": False}}}}
                }
            }
        },
        "integrationSettings": {"sync": {"enabled": False}}
    }


class TestComparisonEngine:
    """Test a full comparison pass."""

    def setup_method(self):
        self.engine = ComparisonEngine()
        self.report = self.engine.compare(make_main(), make_baseline())

    def test_returns_report(self):
        """Test a successful comparison returns a report."""
        assert isinstance(self.report, ComparisonReport)
        assert self.report.main_school == "Main University"
        assert self.report.baseline_environment == "production"
        assert self.report.execution.engine_version == ComparisonEngine.VERSION
        assert self.report.execution.timestamp.endswith("Z")

    def test_entity_selection(self):
        """Test formatter entities missing from merge settings are dropped."""
        assert self.report.selection.entities == ["courses"]
        assert self.report.selection.method == SelectionMethod.FORMATTERS
        assert self.report.selection.invalid_formatter_entities == ["rooms"]

    def test_field_exceptions(self):
        """Test per-entity field exception rows."""
        comparison = self.report.field_exceptions["courses"]
        assert comparison.status == EntityComparisonStatus.OK
        status = {r.path: r.status for r in comparison.rows}
        assert status == {
            "description": DiffStatus.DIFFERENT,
            "name": DiffStatus.MATCH,
            "subjectCode": DiffStatus.ONLY_RIGHT,
        }
        assert self.report.enhanced_available is True
        assert self.report.summary.field_exception_mismatches == 2

    def test_configured_exceptions(self):
        """Test the configured-only rows are computed."""
        rows = self.report.configured_exceptions["courses"]
        assert [(r.path, r.status) for r in rows] == [("description", DiffStatus.ONLY_LEFT)]

    def test_default_methods_and_steps(self):
        """Test default method and stepsToExecute comparisons."""
        assert self.report.summary.default_method_mismatches == 0
        assert self.report.summary.steps_to_execute_mismatches == 1
        differences = [r for r in self.report.steps_to_execute["courses"] if r.status != DiffStatus.MATCH]
        assert differences[0].path == "updateExisting"

    def test_templates(self):
        """Test template comparison."""
        section = self.report.templates["courseTemplate"]
        assert isinstance(section, TemplateComparison)
        assert [r.question_id for r in section.visible_rows] == ["name"]
        assert [r.nested_field_id for r in section.visible_nested_rows] == ["creditHours"]
        assert section.existence[0].question_id == "extra"
        assert self.report.summary.template_differences == 2
        assert "programTemplate" not in self.report.templates

    def test_integration_settings(self):
        """Test integration settings diff rows."""
        rows = self.report.integration_settings
        assert [(r.path, r.status) for r in rows] == [("sync.enabled", DiffStatus.DIFFERENT)]
        assert self.report.attribute_mappings is None

    def test_to_dict_is_json(self):
        """Test the report serializes to JSON."""
        data = json.loads(json.dumps(self.report.to_dict()))
        assert data["summary"]["entities_compared"] == 1
        assert data["field_exceptions"]["courses"]["mismatch_count"] == 2
        assert data["selection"]["method"] == "formatters"

    def test_deterministic(self):
        """Test two passes over the same input give the same rows."""
        again = self.engine.compare(make_main(), make_baseline())
        first = self.report.to_dict()
        second = again.to_dict()
        first.pop("execution")
        second.pop("execution")
        assert first == second

    def test_convenience_function(self):
        """Test the module-level compare function."""
        result = compare(make_main(), make_baseline(), EngineConfig(include_match_rows=False))
        assert all(r.status != DiffStatus.MATCH for r in result.steps_to_execute["courses"])


class TestEngineDegradation:
    """Test partial and failed inputs."""

    def setup_method(self):
        self.engine = ComparisonEngine()

    def test_invalid_snapshot(self):
        """Test a non-mapping snapshot is a validation error response."""
        result = self.engine.compare("not a school", make_baseline())
        assert isinstance(result, ErrorResponse)
        assert result.success is False
        assert result.error["code"] == "VALIDATION_ERROR"

    def test_failed_merge_settings(self):
        """Test a failed merge settings fetch cannot be compared."""
        main = make_main()
        main["mergeSettings"] = {"error": "Request failed with status 500"}
        report = self.engine.compare(main, make_baseline())
        comparison = report.field_exceptions["courses"]
        assert comparison.status == EntityComparisonStatus.CANNOT_COMPARE
        assert comparison.reason == "Main school's merge settings failed"
        assert report.default_methods == []
        assert report.steps_to_execute == {}
        assert report.configured_exceptions == {}

    def test_missing_field_exception_maps(self):
        """Test unfetched maps degrade to configured paths."""
        main = make_main()
        baseline = make_baseline()
        del main["fieldExceptionMaps"]
        baseline["fieldExceptionMaps"] = {"courses": {"error": "Forbidden"}}
        report = self.engine.compare(main, baseline)

        comparison = report.field_exceptions["courses"]
        assert comparison.status == EntityComparisonStatus.PARTIAL
        assert [r.path for r in comparison.rows] == ["description"]
        assert report.enhanced_available is False
        assert report.summary.degraded_maps == 2

    def test_template_error(self):
        """Test an errored template becomes a section error."""
        main = make_main()
        main["courseTemplate"] = {"error": "Not found"}
        report = self.engine.compare(main, make_baseline())
        section = report.templates["courseTemplate"]
        assert isinstance(section, SectionError)
        assert report.field_exceptions["courses"].status == EntityComparisonStatus.OK

    def test_snapshot_from_dict(self):
        """Test snapshot defaults."""
        snapshot = SchoolSnapshot.from_dict({}, default_name="main")
        assert snapshot.name == "main"
        assert snapshot.environment == "staging"
        assert snapshot.field_exception_maps == {}
        assert snapshot.templates == {}


class TestMarkdownRenderer:
    """Test Markdown rendering."""

    def setup_method(self):
        self.report = ComparisonEngine().compare(make_main(), make_baseline())
        self.renderer = MarkdownRenderer()

    def test_sections(self):
        """Test one document per section."""
        documents = self.renderer.render(self.report)
        assert set(documents) == {"fieldExceptions", "stepsToExecute", "courseTemplate", "integrationSettings"}
        for markdown in documents.values():
            assert markdown.startswith("# ")
            assert "Main University (staging)" in markdown

    def test_field_exceptions(self):
        """Test field exception tables."""
        markdown = self.renderer.render_field_exceptions(self.report)
        assert "## courses" in markdown
        assert "| `description` | `alwaysInstitution` (configured) | `resolveAsCoursedog` (default) | Different |" in markdown
        assert "_(not configured)_" in markdown
        assert "rooms" in markdown
        assert "| `name` |" not in markdown

    def test_fallback_without_enhanced_data(self):
        """Test the configured-only fallback."""
        main = make_main()
        baseline = make_baseline()
        del main["fieldExceptionMaps"]
        del baseline["fieldExceptionMaps"]
        report = ComparisonEngine().compare(main, baseline)
        markdown = self.renderer.render_field_exceptions(report)
        assert "Enhanced data not available" in markdown
        assert "Description (`description`)" in markdown

    def test_template(self):
        """Test template differences and existence table."""
        markdown = self.renderer.render(self.report)["courseTemplate"]
        assert "| extra | Yes | No |" in markdown
        assert "### Required Differences" in markdown
        assert "| name | Course Name | true | false | Different |" in markdown
        assert "## Nested Field Differences" in markdown

    def test_nested_field_missing_on_one_side(self):
        """Test a one-sided sub-field renders with the not-in-baseline label."""
        main = make_main()
        main["courseTemplate"]["courseTemplate"]["questions"]["credits"]["config"]["fields"]["lab"] = {"required": True}
        report = ComparisonEngine().compare(main, make_baseline())
        markdown = self.renderer.render(report)["courseTemplate"]
        assert "| credits | lab | required | true | Field not in baseline | Only in main |" in markdown

    def test_truncation(self):
        """Test long values are truncated."""
        main = make_main()
        main["integrationSettings"] = {"sync": {"enabled": "x" * 80}}
        report = ComparisonEngine().compare(main, make_baseline())
        markdown = MarkdownRenderer(value_truncate_length=10).render_integration_settings(report)
        assert '"xxxxxxxxx...' in markdown
        assert "x" * 20 not in markdown

    def test_section_error(self):
        """Test errored sections render the error."""
        main = make_main()
        main["attributeMappings"] = {"error": "500"}
        report = ComparisonEngine().compare(main, make_baseline())
        markdown = self.renderer.render(report)["attributeMappings"]
        assert "**Error:** Attribute mappings data not available" in markdown


class TestReportRunner:
    """Test file loading and report writing."""

    def write(self, path, data):
        path.write_text(yaml.safe_dump(data))
        return str(path)

    def test_run_writes_reports(self, tmp_path):
        """Test Markdown and JSON reports are written."""
        main = self.write(tmp_path / "main.yaml", make_main())
        baseline = self.write(tmp_path / "baseline.yaml", make_baseline())
        output = tmp_path / "reports"

        report = ReportRunner(main, baseline).run(output)

        assert (output / "fieldExceptions.md").exists()
        assert (output / "stepsToExecute.md").exists()
        assert (output / "courseTemplate.md").exists()
        data = json.loads((output / "report.json").read_text())
        assert data["summary"]["field_exception_mismatches"] == report.summary.field_exception_mismatches

    def test_json_input_and_default_names(self, tmp_path):
        """Test JSON snapshots load and unnamed schools take the file name."""
        main = make_main()
        del main["name"]
        (tmp_path / "alpha.json").write_text(json.dumps(main))
        (tmp_path / "beta.json").write_text(json.dumps(make_baseline()))

        report = ReportRunner(str(tmp_path / "alpha.json"), str(tmp_path / "beta.json")).compare()
        assert report.main_school == "alpha"

    def test_config_file(self, tmp_path):
        """Test the engine config is loaded from YAML."""
        config_path = self.write(tmp_path / "config.yaml", {"include_match_rows": False, "log_level": "warning"})
        main = self.write(tmp_path / "main.yaml", make_main())
        baseline = self.write(tmp_path / "baseline.yaml", make_baseline())

        runner = ReportRunner(main, baseline, config_path)
        assert runner.config.include_match_rows is False
        report = runner.compare()
        assert all(r.status != DiffStatus.MATCH for r in report.steps_to_execute["courses"])

    def test_missing_file(self, tmp_path):
        """Test a missing file is a load error."""
        with pytest.raises(SnapshotLoadError):
            load_file(tmp_path / "missing.yaml")

    def test_unparseable_file(self, tmp_path):
        """Test a broken file is a load error."""
        path = tmp_path / "broken.yaml"
        path.write_text("key: [unclosed")
        with pytest.raises(SnapshotLoadError):
            load_file(path)

    def test_bad_config(self, tmp_path):
        """Test unknown config keys are rejected."""
        path = self.write(tmp_path / "config.yaml", {"colour": "blue"})
        with pytest.raises(ConfigError):
            load_config(path)
        assert load_config(None) == EngineConfig()

    def test_engine_error_raises(self, tmp_path):
        """Test an engine error response stops the run."""
        main = self.write(tmp_path / "main.yaml", ["not", "a", "school"])
        baseline = self.write(tmp_path / "baseline.yaml", make_baseline())
        with pytest.raises(SchoolDiffError):
            ReportRunner(main, baseline).run(tmp_path / "reports")
        assert not (tmp_path / "reports").exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
