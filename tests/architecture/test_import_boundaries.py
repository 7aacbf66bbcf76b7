"""
Layer boundaries, checked from source via AST.

    settlement_kernel   -> nothing above it
    settlement_engines  -> settlement_kernel only
    settlement_config   -> settlement_kernel, settlement_engines
    settlement_batch    -> everything

Table creation and the immutability listeners in the kernel register
the batch models lazily; those are the only allowed exceptions.
"""

import ast
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]

ALLOWED_EXCEPTIONS = {
    ("settlement_kernel/db/immutability.py", "settlement_batch.models.batch"),
    ("settlement_kernel/db/engine.py", "settlement_batch.models"),
}

FORBIDDEN = {
    "settlement_kernel": ("settlement_engines", "settlement_config", "settlement_batch"),
    "settlement_engines": ("settlement_config", "settlement_batch"),
    "settlement_config": ("settlement_batch",),
}


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


@pytest.mark.parametrize("package", sorted(FORBIDDEN))
def test_no_upward_imports(package):
    violations = []
    for path in sorted((ROOT / package).rglob("*.py")):
        relative = path.relative_to(ROOT).as_posix()
        for lineno, module in _extract_imports(path):
            if (relative, module) in ALLOWED_EXCEPTIONS:
                continue
            for prefix in FORBIDDEN[package]:
                if module == prefix or module.startswith(f"{prefix}."):
                    violations.append(f"  {relative}:{lineno} imports '{module}'")

    assert not violations, (
        f"{package} must not import {', '.join(FORBIDDEN[package])}:\n"
        + "\n".join(violations)
    )


def test_only_known_settlement_packages():
    """Nothing imports a package that is not part of this distribution."""
    ours = ("settlement_kernel", "settlement_engines", "settlement_config", "settlement_batch")
    stray = []
    for package in ours:
        for path in sorted((ROOT / package).rglob("*.py")):
            for lineno, module in _extract_imports(path):
                top = module.split(".")[0]
                if top.startswith("settlement") and top not in ours:
                    stray.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    assert not stray, "\n".join(stray)
