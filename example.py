"""Example usage of SchoolDiff comparison engine."""

import json
from schooldiff import ComparisonEngine, EngineConfig, MarkdownRenderer, GlobalExceptionTable, ExceptionResolver

# School under review
main_school = {
    "name": "Main University",
    "environment": "staging",
    "formatters": {"courses": True, "sections": True, "rooms": True},  # rooms is not in merge settings
    "mergeSettings": {
        "courses": {
            "enabled": True,
            "conflictHandlingMethod": "resolveAsCoursedog",
            "fieldExceptions": [
                {
                    "conflictHandlingMethod": "alwaysInstitution",
                    "fields": [
                        {"path": "description", "label": "Description"},
                        {"path": "credits.creditHours", "label": "Credit Hours"}
                    ]
                }
            ],
            "stepsToExecute": {"createNew": True, "updateExisting": True}
        },
        "sections": {
            "enabled": True,
            "conflictHandlingMethod": "resolveAsInstitution",
            "fieldExceptions": []
        }
    },
    "fieldExceptionMaps": {
        "courses": {
            "name": "resolveAsCoursedog",
            "description": "resolveAsCoursedog",
            "createdAt": "alwaysCoursedog"
        },
        "sections": {"error": "Request failed with status 500"}
    },
    "courseTemplate": {
        "courseTemplate": {
            "questions": {
                "name": {"required": True, "config": {}},
                "credits": {
                    "required": True,
                    "config": {"fields": {"creditHours": {"required": True}}}
                }
            }
        }
    }
}

# Reference school
baseline_school = {
    "name": "Baseline College",
    "environment": "production",
    "formatters": {"courses": True},
    "mergeSettings": {
        "courses": {
            "enabled": True,
            "conflictHandlingMethod": "resolveAsCoursedog",
            "fieldExceptions": [],
            "stepsToExecute": {"createNew": True, "updateExisting": False}
        },
        "sections": {
            "enabled": True,
            "conflictHandlingMethod": "resolveAsCoursedog",
            "fieldExceptions": []
        }
    },
    "fieldExceptionMaps": {
        "courses": {
            "name": "resolveAsCoursedog",
            "description": "resolveAsCoursedog",
            "createdAt": "alwaysCoursedog",
            "subjectCode": "alwaysInstitution"
        },
        "sections": {"times": "resolveAsCoursedog"}
    },
    "courseTemplate": {
        "courseTemplate": {
            "questions": {
                "name": {"required": False, "config": {}},
                "credits": {
                    "required": True,
                    "config": {"fields": {"creditHours": {"required": False}}}
                }
            }
        }
    }
}


def main():
    print("=" * 60)
    print("SchoolDiff Comparison Engine - Example")
    print("=" * 60)

    # Create engine with default config
    engine = ComparisonEngine()

    # Compare schools
    result = engine.compare(main_school, baseline_school)

    # Check result type
    if hasattr(result, 'summary'):
        # Success - ComparisonReport
        print(f"\nEntities: {', '.join(result.selection.entities)}")
        print(f"Selection: {result.selection.method.value}")
        print(f"\nExecution:")
        print(f"  Duration: {result.execution.duration_ms}ms")
        print(f"  Engine Version: {result.execution.engine_version}")

        print(f"\nSummary:")
        for key, value in result.summary.to_dict().items():
            print(f"  {key}: {value}")

        for entity, comparison in result.field_exceptions.items():
            print(f"\n{entity} [{comparison.status.value}]")
            for row in comparison.mismatches:
                print(f"  - [{row.status.value}] {row.path}")
                print(f"    Main: {row.main.comparable}")
                print(f"    Baseline: {row.baseline.comparable}")

        print("\n" + "-" * 60)
        print("Field Exceptions Markdown:")
        print(MarkdownRenderer().render(result)["fieldExceptions"])

    else:
        # Error - ErrorResponse
        print(f"\nError: {result.error['code']}")
        print(f"Message: {result.error['message']}")
        print(f"Details: {result.error.get('details', {})}")


def example_resolution():
    """Example of resolving single fields through the three layers."""
    print("\n" + "=" * 60)
    print("Example: Exception Resolution")
    print("=" * 60)

    resolver = ExceptionResolver(GlobalExceptionTable.default())
    settings = main_school["mergeSettings"]["courses"]

    for path in ("createdAt", "description", "name"):
        resolution = resolver.resolve(path, "courses", settings)
        print(f"  {path}: {resolution.value} ({resolution.source.value})")


def example_without_match_rows():
    """Example with match rows left out of structural diffs."""
    print("\n" + "=" * 60)
    print("Example without Match Rows")
    print("=" * 60)

    config = EngineConfig(include_match_rows=False)
    engine = ComparisonEngine(config)

    result = engine.compare(main_school, baseline_school)

    if hasattr(result, 'summary'):
        print(json.dumps(
            {entity: [r.to_dict() for r in rows] for entity, rows in result.steps_to_execute.items()},
            indent=2
        ))


if __name__ == "__main__":
    main()
    example_resolution()
    example_without_match_rows()
