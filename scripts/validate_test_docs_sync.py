#!/usr/bin/env python3
"""
Report whether docs/test_scenarios_business_summary.md matches
tests/test_integration_scenarios.py, class by class.

Run: python scripts/validate_test_docs_sync.py
Exit code is 1 when a scenario is undocumented or documented under the
wrong class; stale documentation is reported as a warning.
"""

import re
import sys
from pathlib import Path

CLASS_LINE = re.compile(r'^class (Test\w+)')
METHOD_LINE = re.compile(r'^\s+def (test_\w+)')
DOC_CLASS = re.compile(r'\*\*Test Class\*\*:\s*`(Test\w+)`')
DOC_METHOD = re.compile(r'\*\*Test Method\*\*:\s*`(test_\w+)`')


def group_by_class(path: Path, class_pattern, method_pattern) -> dict[str, list[str]]:
    grouped = {}
    current = None
    for line in path.read_text().splitlines():
        class_match = class_pattern.search(line)
        if class_match:
            current = class_match.group(1)
            grouped[current] = []
            continue
        method_match = method_pattern.search(line)
        if current and method_match:
            grouped[current].append(method_match.group(1))
    return grouped


def main():
    project_root = Path(__file__).parent.parent
    test_file = project_root / 'tests' / 'test_integration_scenarios.py'
    doc_file = project_root / 'docs' / 'test_scenarios_business_summary.md'

    for path in (test_file, doc_file):
        if not path.exists():
            print(f"❌ File not found: {path}")
            sys.exit(1)

    tests = group_by_class(test_file, CLASS_LINE, METHOD_LINE)
    docs = group_by_class(doc_file, DOC_CLASS, DOC_METHOD)

    errors = []
    warnings = []
    for cls, methods in tests.items():
        if cls not in docs:
            errors.append(f"Missing class documentation: {cls}")
            continue
        for method in methods:
            if method not in docs[cls]:
                errors.append(f"Missing method documentation: {cls}.{method}")
    for cls, methods in docs.items():
        if cls not in tests:
            warnings.append(f"Documented class no longer exists: {cls}")
            continue
        for method in methods:
            if method not in tests[cls]:
                warnings.append(f"Documented method not in {cls}: {method}")

    print("=" * 60)
    print("Scenario Documentation Sync")
    print("=" * 60)
    print(f"Scenario classes: {len(tests)}  methods: {sum(len(m) for m in tests.values())}")
    print(f"Documented classes: {len(docs)}  methods: {sum(len(m) for m in docs.values())}")

    if errors:
        print(f"\n❌ ERRORS ({len(errors)}):")
        for error in sorted(errors):
            print(f"   - {error}")

    if warnings:
        print(f"\n⚠️  WARNINGS ({len(warnings)}):")
        for warning in sorted(warnings):
            print(f"   - {warning}")

    if not errors and not warnings:
        print("\n✅ All scenarios are documented and in sync!")

    print("\nCoverage by Class:")
    for cls, methods in sorted(tests.items()):
        documented = docs.get(cls, [])
        print(f"\n  {'✅' if cls in docs else '❌'} {cls}")
        for method in methods:
            print(f"      {'✅' if method in documented else '❌'} {method}")

    sys.exit(1 if errors else 0)


if __name__ == '__main__':
    main()
