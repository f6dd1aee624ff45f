from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .config import RuleKind
from .query_catalog import list_queries
from .registry import CustomEvaluatorRegistry


class EngineCatalog(BaseModel):
    """What rule authors may reference: catalog query ids and custom evaluator names."""

    rule_kinds: List[str] = Field(default_factory=list)
    queries: List[Dict[str, str]] = Field(default_factory=list)
    custom_evaluators: List[str] = Field(default_factory=list)


def build_catalog(registry: Optional[CustomEvaluatorRegistry] = None) -> EngineCatalog:
    queries = sorted((entry.model_dump() for entry in list_queries()), key=lambda e: e["id"])
    return EngineCatalog(
        rule_kinds=[kind.value for kind in RuleKind],
        queries=queries,
        custom_evaluators=sorted(registry.list_registered()) if registry is not None else [],
    )


def _dump_json(catalog: dict[str, Any]) -> str:
    return json.dumps(catalog, indent=2, sort_keys=True)


def _dump_yaml(catalog: dict[str, Any]) -> str:
    try:
        import yaml  # type: ignore
    except ModuleNotFoundError as exc:
        raise SystemExit(
            "PyYAML is required for YAML output. Install it in your backend venv (e.g., `pip install pyyaml`)."
        ) from exc

    return yaml.safe_dump(catalog, sort_keys=True)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Print the compliance query catalog (ids and descriptions only).")
    parser.add_argument(
        "--format",
        choices=("yaml", "json"),
        default="yaml",
        help="Output format (default: yaml).",
    )
    args = parser.parse_args(argv)

    catalog = build_catalog().model_dump()
    if args.format == "json":
        print(_dump_json(catalog))
    else:
        print(_dump_yaml(catalog))


if __name__ == "__main__":
    main()
