"""
main.py
--------
Entry point for the Subscription & Rule Engine.

Reads a transactions CSV and a YAML rule set, runs recurring detection,
bill projection and rule application, and writes output to the outputs/
folder.

Usage (from the project root):
    python main.py

    # With optional arguments:
    python main.py --input path/to/transactions.csv
    python main.py --rules path/to/rules.yaml
    python main.py --today 2025-10-20
"""

import sys
import os
import argparse
import logging
from datetime import date, datetime

# Ensure project root is on path (for runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from config.config_loader import get_rule_engine_config
from core.exceptions import InputValidationError
from core.ingest import load_transactions
from pipeline import PipelineResult, SubscriptionPipeline
from rules.rule_loader import load_rules


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Subscription & Rule Engine: detect recurring payments and apply transaction rules."
    )
    parser.add_argument(
        "--input", type=str, default=None,
        help="Path to input transactions CSV. Defaults to sample_transactions.csv in project root."
    )
    parser.add_argument(
        "--rules", type=str, default=None,
        help="Path to YAML rule set. Defaults to the rule_engine.default_rules_path config value."
    )
    parser.add_argument(
        "--today", type=date.fromisoformat, default=None,
        help="Evaluation date (YYYY-MM-DD) for upcoming bills. Defaults to the system date."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    # --- Resolve paths ---
    input_path = args.input or os.path.join(PROJECT_ROOT, "sample_transactions.csv")
    rules_path = args.rules or os.path.join(PROJECT_ROOT, get_rule_engine_config()["default_rules_path"])
    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")
    today = args.today or date.today()
    os.makedirs(output_dir, exist_ok=True)

    # --- Load inputs ---
    logger.info(f"Loading transactions from: {input_path}")
    try:
        transactions = load_transactions(input_path)
        rules = load_rules(rules_path)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except InputValidationError as e:
        logger.error(f"Invalid input: {e}")
        return 2

    # --- Run pipeline ---
    pipeline = SubscriptionPipeline()
    result = pipeline.run(transactions, rules, today=today)

    # --- Output ---
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    outputs = {
        "recurring_groups": result.groups_df,
        "upcoming_bills": result.bills_df,
        "categorized_transactions": result.transactions_df,
    }
    for name, df in outputs.items():
        path = os.path.join(output_dir, f"{name}_{timestamp}.csv")
        df.to_csv(path, index=False)
        logger.info(f"{name} saved to: {path}")

    _print_summary(result, today)
    return 0


def _print_summary(result: PipelineResult, today: date):
    """Prints a clean summary table to the console."""
    print("\n" + "=" * 80)
    print(f"  RECURRING PAYMENTS SUMMARY  (as of {today.isoformat()})")
    print("=" * 80)

    if result.groups_df.empty:
        print("\n  No recurring payments detected.")
    else:
        print("\n  Detected Recurring Payments:")
        print("  " + "-" * 60)
        for _, row in result.groups_df.iterrows():
            marker = "*" if row["is_subscription"] else " "
            print(
                f"  {marker} {row['merchant_name']:28s} {row['frequency_label']:14s} "
                f"{row['average_amount']:>10,.2f}  ({row['confidence_level']})"
            )
        print("  (* = subscription-like)")

    summary = result.summary
    if summary is not None:
        print(f"\n  Monthly cost:       {summary.monthly_cost:>10,.2f}")
        print(f"  Yearly projection:  {summary.yearly_projection:>10,.2f}")
        print(f"  Upcoming bills:     {len(summary.upcoming_bills):>10,}")

    if result.invalid_rules:
        print("\n  Skipped invalid rules:")
        for rule_id, errors in result.invalid_rules.items():
            print(f"    {rule_id}: {'; '.join(errors)}")

    print("=" * 80 + "\n")


if __name__ == "__main__":
    sys.exit(main())
