#!/usr/bin/env python3
"""
Demo: Build the example orders filter, edit it, and show every preview.

1. Load the example filter into a session
2. Print SQL, document query and English previews
3. Show complexity and which example rows match
4. Disable a condition, undo it, and export the state to YAML
"""

import json
import logging

from multifilter.examples import build_example_orders_filter, build_example_rows
from multifilter.serialization import model_to_yaml
from multifilter.session import FilterSession
from multifilter.tree import outline


def print_previews(session):
    sql = session.sql_preview()
    print(f"   SQL:       {sql.query}")
    print(f"   Params:    {sql.params}")
    print(f"   Document:  {json.dumps(session.to_document_query().query)}")
    print(f"   English:   {session.to_natural_language().query}")
    for warning in sql.warnings:
        print(f"   ⚠️  {warning}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 80)
    print("QUERY PREVIEW DEMO: Filter tree → SQL / Document / English")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Load
    # =========================================================================
    print("\n1. LOADING EXAMPLE FILTER...")
    session = FilterSession(model=build_example_orders_filter())
    print(f"   ✓ Filter: {session.model.metadata.name} (column {session.model.column_id})")
    print(f"   ✓ Version: {session.model.version}")
    print()
    print(outline(session.root))

    # =========================================================================
    # STEP 2: Previews
    # =========================================================================
    print("\n2. PREVIEWS...")
    print_previews(session)

    # =========================================================================
    # STEP 3: Analysis
    # =========================================================================
    print("\n3. ANALYSIS...")
    complexity = session.complexity()
    performance = session.performance()
    print(f"   ✓ Nodes: {complexity.node_count}, depth: {complexity.max_depth}, "
          f"operators: {complexity.operator_diversity}")
    print(f"   ✓ Performance: {complexity.estimated_performance} "
          f"(cost {performance.cost_score}, optimization {performance.optimization_level}/10)")
    for suggestion in complexity.optimization_suggestions:
        print(f"   💡 {suggestion}")
    issues = session.validate()
    print(f"   ✓ Validation issues: {len(issues)}")

    rows = build_example_rows()
    matched = session.filter_rows(rows)
    print(f"   ✓ Rows matched: {len(matched)}/{len(rows)}")
    for row in matched:
        print(f"     - age={row['age']} region={row['region']} amount={row['amount']}")

    # =========================================================================
    # STEP 4: Edit, undo, export
    # =========================================================================
    print("\n4. EDITING...")
    session.set_enabled("status", False)
    print(f"   ✓ Disabled 'status' (version {session.model.version})")
    print(f"   English:   {session.to_natural_language().query}")
    session.undo()
    print(f"   ✓ Undo (version {session.model.version})")

    output_path = "example_filter_output.yaml"
    with open(output_path, "w") as f:
        f.write(model_to_yaml(session.model))
    print(f"\n✅ Filter exported to {output_path}")


if __name__ == "__main__":
    main()
