#!/usr/bin/env python3
"""
Lending Market Stress Testing - Main Entry Point

Command-line interface for running stress scenarios against the lending
market and exporting their metrics.
"""

import argparse
import logging
import sys
import os

import pandas as pd

# Allow running as a script from inside the package directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lending_market_sim.stress_testing.runner import StressTestRunner
from lending_market_sim.stress_testing.scenarios import LendingStressTestSuite


def main(argv=None) -> int:
    """Main entry point with command-line interface"""

    parser = argparse.ArgumentParser(
        description="Lending Market Stress Testing Framework",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --list-scenarios                     # Show available scenarios
  python main.py --scenario BTC_Flash_Crash           # Run one scenario
  python main.py --scenario Bank_Run --monte-carlo 20 # Monte Carlo over seeds
  python main.py --full-suite --output results.csv    # Every scenario, summaries to CSV
        """
    )

    parser.add_argument('--scenario', type=str,
                        help='Run specific stress test scenario')
    parser.add_argument('--full-suite', action='store_true',
                        help='Run complete stress test suite')
    parser.add_argument('--list-scenarios', action='store_true',
                        help='List all available stress test scenarios')

    parser.add_argument('--monte-carlo', type=int, default=0,
                        help='Number of Monte Carlo runs for --scenario (default: single run)')
    parser.add_argument('--agents', type=int, nargs=3, default=[5, 6, 2],
                        help='Number of agents: lenders borrowers liquidators (default: 5 6 2)',
                        metavar=('LENDERS', 'BORROWERS', 'LIQUIDATORS'))
    parser.add_argument('--seed', type=int, default=42,
                        help='Random seed (default: 42)')
    parser.add_argument('--output', type=str,
                        help='Export per-step metrics (or summaries) to CSV')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output, including market log messages')

    args = parser.parse_args(argv)

    if not any([args.scenario, args.full_suite, args.list_scenarios]):
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.ERROR,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.list_scenarios:
        list_scenarios()
        return 0

    lenders, borrowers, liquidators = args.agents
    runner = StressTestRunner(lenders, borrowers, liquidators, seed=args.seed, verbose=args.verbose)

    try:
        if args.scenario:
            print(f"Running Stress Test Scenario: {args.scenario}")
            print("=" * 60)
            return run_single_scenario(runner, args)

        print("Running Full Stress Test Suite")
        print("=" * 50)
        return run_full_suite(runner, args)

    except KeyError as e:
        print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 1


def list_scenarios():
    print("Available stress test scenarios:")
    for name, description in LendingStressTestSuite().get_scenario_descriptions().items():
        print(f"  {name:<20} {description}")


def run_single_scenario(runner: StressTestRunner, args) -> int:
    if args.monte_carlo:
        result = runner.run_monte_carlo_stress_test(args.scenario, args.monte_carlo)
        print("\nAggregate over runs:")
        for metric, stats in result["aggregate"].items():
            print(f"  {metric}: mean {stats['mean']:.4f}, std {stats['std']:.4f}")
        if args.output:
            result["runs"].to_csv(args.output)
            print(f"\nRun summaries written to {args.output}")
        return 0

    result = runner.run_scenario(args.scenario)
    print("\nSummary:")
    runner.print_summary(result["summary"])
    if not result["liquidations"].empty:
        print(f"\nLiquidations: {len(result['liquidations'])}")
        print(result["liquidations"].head(10).to_string(index=False))
    if args.output:
        result["metrics"].to_csv(args.output)
        print(f"\nPer-step metrics written to {args.output}")
    return 0


def run_full_suite(runner: StressTestRunner, args) -> int:
    results = runner.run_full_stress_test_suite()
    summaries = pd.DataFrame({name: result["summary"] for name, result in results.items()}).T
    print("\nSuite summary:")
    print(summaries.to_string())
    if args.output:
        summaries.to_csv(args.output)
        print(f"\nScenario summaries written to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
