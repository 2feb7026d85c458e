#!/usr/bin/env python3
"""
Validation script for Entra Audit.

This script validates that all dependencies are installed correctly
and that the core modules and command-line interface load.
"""

import sys
import importlib


def check_dependency(package_name, import_name=None):
    """Check if a package/module can be imported."""
    if import_name is None:
        import_name = package_name

    try:
        importlib.import_module(import_name)
        return True, f"✓ {package_name} available"
    except ImportError as e:
        return False, f"✗ {package_name} missing: {e}"


def validate_dependencies():
    """Validate all required dependencies."""
    print("=== Dependency Validation ===")

    dependencies = [
        ("PyYAML", "yaml"),
        ("cryptography", "cryptography"),
        ("rich", "rich"),
    ]

    test_dependencies = [
        ("pytest", "pytest"),
    ]

    all_ok = True
    for pkg_name, import_name in dependencies:
        ok, message = check_dependency(pkg_name, import_name)
        print(f"  {message}")
        if not ok:
            all_ok = False

    print("\n  Test dependencies:")
    for pkg_name, import_name in test_dependencies:
        ok, message = check_dependency(pkg_name, import_name)
        print(f"  {message}")

    return all_ok


def validate_core_modules():
    """Validate core application modules."""
    print("\n=== Core Module Validation ===")

    modules = [
        "entra_audit.config",
        "entra_audit.logging_setup",
        "entra_audit.models",
        "entra_audit.graph_client",
        "entra_audit.directory",
        "entra_audit.sources",
        "entra_audit.reporting",
        "entra_audit.main",
        "entra_audit.audits.base",
        "entra_audit.audits.disabled_w365",
        "entra_audit.audits.mfa_methods",
        "entra_audit.audits.device_groups",
    ]

    all_ok = True
    for module in modules:
        ok, message = check_dependency(module, module)
        print(f"  {message}")
        if not ok:
            all_ok = False

    return all_ok


def validate_cli():
    """Validate command-line interface."""
    print("\n=== CLI Validation ===")

    import subprocess

    result = subprocess.run([sys.executable, "-m", "entra_audit.main", "--help"],
                            capture_output=True, text=True)
    if result.returncode == 0:
        print("  ✓ Help command working")
        return True

    print("  ✗ Help command failed")
    return False


def main():
    """Run all validations."""
    print("Entra Audit - Installation Validation")
    print("=" * 50)

    all_validations = [
        validate_dependencies(),
        validate_core_modules(),
        validate_cli(),
    ]

    print("\n=== Summary ===")
    if all(all_validations):
        print("✓ All validations passed!")
        print("\nNext steps:")
        print("  1. Copy config.example.yaml to config.yaml and fill in the Graph app registration")
        print("  2. Test with: python -m entra_audit.main --health-check")
        print("  3. Run an audit: python -m entra_audit.main disabled_w365 --input users.csv")
        return 0

    print("✗ Some validations failed!")
    print("Please resolve the issues above before using the application.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
