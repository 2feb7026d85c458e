#!/usr/bin/env python3
"""
Test runner for Entra Audit.

Discovers every test module in the tests directory and runs them module by
module, printing a per-module summary. Pass module names to run a subset:

    python tests/run_tests.py test_graph_client test_audits
"""

import os
import sys
import unittest

TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.dirname(TESTS_DIR))


def discover_modules(selected):
    """Return the test module names to run, in alphabetical order."""
    modules = sorted(
        name[:-3] for name in os.listdir(TESTS_DIR)
        if name.startswith('test_') and name.endswith('.py')
    )
    if selected:
        unknown = [name for name in selected if name not in modules]
        if unknown:
            raise SystemExit(f"Unknown test module(s): {', '.join(unknown)}")
        modules = [name for name in modules if name in selected]
    return modules


def run_module(loader, runner, module_name):
    print(f"\n{'=' * 60}")
    print(f"Running {module_name}")
    print('=' * 60)
    suite = loader.discover(TESTS_DIR, pattern=f'{module_name}.py')
    return runner.run(suite)


def main(argv=None):
    """Run the test modules and return a process exit code."""
    modules = discover_modules(argv if argv is not None else sys.argv[1:])
    if not modules:
        print("No test modules found!")
        return 1

    loader = unittest.TestLoader()
    runner = unittest.TextTestRunner(verbosity=1)

    failed_modules = []
    total_tests = 0
    for module_name in modules:
        result = run_module(loader, runner, module_name)
        total_tests += result.testsRun
        if not result.wasSuccessful():
            failed_modules.append(module_name)

    print(f"\n{'=' * 60}")
    print("TEST SUMMARY")
    print('=' * 60)
    print(f"Modules: {len(modules)}")
    print(f"Tests run: {total_tests}")
    print(f"Failed modules: {len(failed_modules)}")
    for module_name in failed_modules:
        print(f"  - {module_name}")

    return 0 if not failed_modules else 1


if __name__ == "__main__":
    sys.exit(main())
