#!/usr/bin/env python3
"""
Multi-tenancy scoping lint check.

This script scans the storefront package for common multi-tenancy violations:
1. Raw queries on tenant-owned tables (products, categories, orders) outside
   the tenancy package, which must go through ScopedRepository
2. Hardcoded admin ids used as owners
3. ScopedRepository built without a declared scope

USAGE:
    python scripts/check_tenant_scoping.py

    # Or with verbose output
    python scripts/check_tenant_scoping.py -v

    # Fail on critical/high findings (CI)
    python scripts/check_tenant_scoping.py --strict

EXIT CODES:
    0 - No issues found (or only warnings without --strict)
    1 - Critical/high issues found with --strict
"""

import argparse
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

# ────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────

# Root directory to scan
SCAN_ROOT = Path(__file__).parent.parent / "Backend" / "storefront"

# Files/directories to exclude
EXCLUDE_PATTERNS = [
    "__pycache__",
    ".pyc",
    "tenancy/",  # The scoped repository lives here
    "test_",
]

# Patterns that indicate tenant scoping issues
BAD_PATTERNS: List[Tuple[str, str, str]] = [
    # (pattern, severity, description)
    (
        r"select\((Product|Category)\b",
        "HIGH",
        "Catalog query outside ScopedRepository - potential cross-tenant leak",
    ),
    (
        r"select\((Order|OrderItem)\b",
        "HIGH",
        "Order query outside ScopedRepository - orders are scoped by product ownership",
    ),
    (
        r"created_by\s*=\s*\d+",
        "CRITICAL",
        "Hardcoded owner id - should come from the resolved TenantContext",
    ),
    (
        r"^[A-Z_]*ADMIN_ID\s*=\s*\d+",
        "CRITICAL",
        "Hardcoded ADMIN_ID constant - should use TenantContext resolution",
    ),
    (
        r"ScopedRepository\(\s*\w+\s*\)",
        "HIGH",
        "ScopedRepository without a scope - pass a TenantContext or UNSCOPED",
    ),
    (
        r"\bUNSCOPED\b",
        "INFO",
        "Deliberately unscoped access - confirm a global view is intended",
    ),
]

# Patterns that are OK (suppress false positives)
IGNORE_PATTERNS = [
    r"^\s*#",  # Comments
    r"^\s*(from|import)\s",  # Imports
    r"noqa:\s*tenant-scoping",  # Explicit suppression
]


# ────────────────────────────────────────────────────────────────
# Data Classes
# ────────────────────────────────────────────────────────────────

@dataclass
class Finding:
    """A single tenant scoping issue."""

    file: Path
    line_num: int
    line_text: str
    severity: str
    description: str

    def __str__(self):
        return f"{self.severity}: {self.file}:{self.line_num} - {self.description}\n  > {self.line_text.strip()}"


# ────────────────────────────────────────────────────────────────
# Scanning Logic
# ────────────────────────────────────────────────────────────────

def should_exclude(path: Path) -> bool:
    path_str = path.as_posix()
    return any(excl in path_str for excl in EXCLUDE_PATTERNS)


def should_ignore_line(line: str) -> bool:
    return any(re.search(pattern, line) for pattern in IGNORE_PATTERNS)


def scan_file(file_path: Path) -> List[Finding]:
    """Scan a single file for tenant scoping issues."""
    findings = []

    try:
        content = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"Warning: Could not read {file_path}: {e}", file=sys.stderr)
        return []

    for line_num, line in enumerate(content.split("\n"), 1):
        if should_ignore_line(line):
            continue

        for pattern, severity, description in BAD_PATTERNS:
            if re.search(pattern, line):
                findings.append(Finding(
                    file=file_path,
                    line_num=line_num,
                    line_text=line,
                    severity=severity,
                    description=description,
                ))

    return findings


def scan_directory(root: Path) -> List[Finding]:
    """Recursively scan a directory for tenant scoping issues."""
    all_findings = []

    for path in sorted(root.rglob("*.py")):
        if should_exclude(path):
            continue
        all_findings.extend(scan_file(path))

    return all_findings


def blocking(findings: List[Finding]) -> List[Finding]:
    return [f for f in findings if f.severity in ("CRITICAL", "HIGH")]


# ────────────────────────────────────────────────────────────────
# Reporting
# ────────────────────────────────────────────────────────────────

def print_report(findings: List[Finding], verbose: bool = False):
    if not findings:
        print("✅ No tenant scoping issues found!")
        return

    by_severity = {}
    for f in findings:
        by_severity.setdefault(f.severity, []).append(f)

    print("\n" + "=" * 60)
    print("MULTI-TENANCY SCOPING CHECK REPORT")
    print("=" * 60)

    severity_order = ["CRITICAL", "HIGH", "MEDIUM", "WARNING", "INFO"]
    severity_emoji = {
        "CRITICAL": "🔴",
        "HIGH": "🟠",
        "MEDIUM": "🟡",
        "WARNING": "🟣",
        "INFO": "🔵",
    }

    print("\nSUMMARY:")
    for sev in severity_order:
        count = len(by_severity.get(sev, []))
        if count > 0:
            print(f"  {severity_emoji.get(sev, '⚪')} {sev}: {count}")

    print(f"\nTOTAL: {len(findings)} issues")

    if verbose:
        print("\n" + "-" * 60)
        print("DETAILS:")
        print("-" * 60)

        for sev in severity_order:
            if sev in by_severity:
                print(f"\n{severity_emoji.get(sev, '⚪')} {sev}:")
                for f in by_severity[sev]:
                    print(f"  {f.file}:{f.line_num}")
                    print(f"    {f.description}")
                    print(f"    > {f.line_text.strip()[:80]}")
    else:
        print("\nRun with -v for detailed findings.")

    print("\n" + "=" * 60)


# ────────────────────────────────────────────────────────────────
# Main
# ────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(
        description="Check the storefront package for multi-tenancy scoping issues"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed findings")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with code 1 if critical/high issues are found (for CI)",
    )
    parser.add_argument(
        "--path",
        type=Path,
        default=SCAN_ROOT,
        help=f"Path to scan (default: {SCAN_ROOT})",
    )

    args = parser.parse_args()

    if not args.path.exists():
        print(f"Error: Path {args.path} does not exist", file=sys.stderr)
        sys.exit(1)

    print(f"Scanning {args.path}...")
    findings = scan_directory(args.path)

    print_report(findings, verbose=args.verbose)

    critical = blocking(findings)
    if args.strict and critical:
        print(f"\n❌ {len(critical)} critical/high issues found. Failing.")
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
