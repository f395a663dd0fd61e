from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from ..accounts import build_population
from ..client import DEFAULT_ABI_PATH, ClientInitError, ClientSettings, create_client
from ..directory import ActorDirectory, Role
from .charts import render_run_charts
from .collector import BatchResult, RunReport, format_batch_report
from .config import BenchmarkPlan, load_plan, parse_batch_sizes
from .load import BatchRunner
from .supervisor import RunSupervisor

LOGGER = logging.getLogger("healthsim.benchmark")


def _env_float(name: str) -> float | None:
    value = os.environ.get(name)
    return float(value) if value else None


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    return int(value) if value else None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="HealthDataSharing contract benchmark harness")
    parser.add_argument(
        "--rpc-url",
        default=os.environ.get("HEALTHSIM_RPC_URL", "http://127.0.0.1:8545"),
        help="JSON-RPC endpoint of the node hosting the contract",
    )
    parser.add_argument(
        "--contract-address",
        default=os.environ.get(
            "HEALTHSIM_CONTRACT_ADDRESS", "0x5FbDB2315678afecb367f032d93F642f64180aa3"
        ),
    )
    parser.add_argument(
        "--abi-path",
        default=os.environ.get("HEALTHSIM_ABI_PATH", str(DEFAULT_ABI_PATH)),
        help="Contract ABI as a JSON list or a Hardhat artifact",
    )
    parser.add_argument(
        "--actors",
        type=int,
        default=_env_int("HEALTHSIM_ACTORS"),
        help="Size of the actor population, deployer included (default 20)",
    )
    parser.add_argument(
        "--batches",
        default=os.environ.get("HEALTHSIM_BATCHES"),
        help="Comma-separated ascending batch sizes (default 1000,5000,10000,15000,25000)",
    )
    parser.add_argument(
        "--deadline-seconds",
        type=float,
        default=_env_float("HEALTHSIM_DEADLINE_SECONDS"),
        help="Global run deadline; partial results are reported when it passes (default 1800)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=_env_int("HEALTHSIM_SEED"),
        help="Seed for the per-actor random sources",
    )
    parser.add_argument(
        "--receipt-timeout",
        type=float,
        default=_env_float("HEALTHSIM_RECEIPT_TIMEOUT") or 120.0,
        help="Seconds to wait for each transaction receipt",
    )
    parser.add_argument(
        "--gas",
        type=int,
        default=_env_int("HEALTHSIM_GAS"),
        help="Fixed gas limit per transaction (estimated by the node when omitted)",
    )
    parser.add_argument(
        "--gas-price-gwei",
        type=float,
        default=_env_float("HEALTHSIM_GAS_PRICE_GWEI") or 20.0,
        help="Gas price used when signing transactions for generated accounts",
    )
    parser.add_argument(
        "--plan-path",
        default=os.environ.get("BENCHMARK_PLAN_PATH"),
        help="Optional JSON file describing a custom benchmark plan",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("BENCHMARK_OUTPUT_DIR"),
        help="Directory to store benchmark artefacts (charts and CSV files)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the planned batches without executing them",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BENCHMARK_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    parser.add_argument(
        "--log-path",
        default=os.environ.get("BENCHMARK_LOG_PATH"),
        help="Also write log records to this file",
    )
    args = parser.parse_args(argv)

    try:
        args.plan = build_plan(args)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))
    return args


def build_plan(args: argparse.Namespace) -> BenchmarkPlan:
    plan = load_plan(args.plan_path)
    return plan.with_overrides(
        batch_sizes=parse_batch_sizes(args.batches) if args.batches else None,
        actor_count=args.actors,
        deadline_seconds=args.deadline_seconds,
        seed=args.seed,
    ).validate()


def setup_logging(level: str, log_path: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_path)
    plan: BenchmarkPlan = args.plan

    if args.dry_run:
        _print_plan(plan)
        return 0

    settings = ClientSettings(
        rpc_url=args.rpc_url,
        contract_address=args.contract_address,
        abi_path=Path(args.abi_path),
        receipt_timeout=args.receipt_timeout,
        gas=args.gas,
        gas_price_gwei=args.gas_price_gwei,
    )
    try:
        client = create_client(settings)
        actors = build_population(client.node_accounts(), plan.actor_count)
    except ClientInitError:
        LOGGER.exception("failed to initialise contract client")
        return 1

    directory = ActorDirectory(actors)
    runner = BatchRunner(
        client=client,
        directory=directory,
        policy=plan.worker_policy,
        seed=plan.seed,
    )
    supervisor = RunSupervisor(
        runner=runner,
        batch_sizes=plan.batch_sizes,
        deadline_seconds=plan.deadline_seconds,
        on_batch=_print_batch,
    )
    report = supervisor.run()

    if report.timed_out:
        print(f"Script execution timed out after {plan.deadline_seconds:.0f} seconds")
    _print_roles(directory)

    if args.output_dir:
        write_artifacts(report, Path(args.output_dir))
    return 0


def write_artifacts(report: RunReport, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    LOGGER.info("Benchmark output directory: %s", output_dir)

    report_path = output_dir / "run_report.csv"
    report.to_dataframe().to_csv(report_path, index=False)
    errors_path = output_dir / "error_histogram.csv"
    report.errors_dataframe().to_csv(errors_path, index=False)
    chart_path = render_run_charts(report, output_dir)

    manifest = {
        "batches": [result.batch_size for result in report],
        "planned_batches": list(report.planned_batch_sizes),
        "timed_out": report.timed_out,
        "report": str(report_path),
        "errors": str(errors_path),
        "chart": str(chart_path) if chart_path else None,
    }
    manifest_path = output_dir / "benchmark_manifest.json"
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)
    LOGGER.info("Benchmark manifest written to %s", manifest_path)
    return manifest_path


def _print_batch(result: BatchResult) -> None:
    print(f"\n--- Batch of {result.batch_size} transactions ---")
    for line in format_batch_report(result):
        print(line)


def _print_roles(directory: ActorDirectory) -> None:
    print("\nFinal local role counts:")
    for role in Role:
        print(f"  {role.name.lower()}: {directory.count_with_role(role)}/{len(directory)}")


def _print_plan(plan: BenchmarkPlan) -> None:
    print(
        f"Plan: {len(plan.batch_sizes)} batches, actors={plan.actor_count}, "
        f"deadline={plan.deadline_seconds:.0f}s seed={plan.seed}"
    )
    print(
        f"  worker pause: {plan.worker_policy.pause_seconds}s "
        f"every {plan.worker_policy.pause_every} iterations"
    )
    for batch_size in plan.batch_sizes:
        print(f"  - batch of {batch_size} actions")


if __name__ == "__main__":
    sys.exit(main())
