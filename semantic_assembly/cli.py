"""CLI entry point for semantic assembly."""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

from semantic_assembly.assembly.controller import AssemblyController
from semantic_assembly.config import Config, load_config
from semantic_assembly.errors import InvalidInput
from semantic_assembly.llm import LLMClient
from semantic_assembly.models import Phase
from semantic_assembly.output.snapshot import write_snapshot
from semantic_assembly.space.distance_matrix import DistanceMatrix
from semantic_assembly.space.layout_engine import LayoutEngine

logger = logging.getLogger(__name__)


def run_headless(controller: AssemblyController, question: str, fps: float, timeout: float) -> float:
    """Drive the controller on a simulated clock until it is observed (or gives up).

    Returns the simulated time at which the run stopped.
    """
    dt = 1.0 / fps
    now = 0.0
    controller.submit_question(question, now=now)
    last_status = controller.status
    print(f"[{now:6.2f}s] {controller.phase.value}: {last_status}")

    while now < timeout:
        now += dt
        phase = controller.tick(now)
        if controller.status != last_status:
            last_status = controller.status
            print(f"[{now:6.2f}s] {phase.value}: {last_status}")
        if phase == Phase.OBSERVED and controller.interpretation is not None:
            break
        if phase == Phase.IDLE:
            break
    return now


def _ask(args: argparse.Namespace, config: Config) -> int:
    updates: dict[str, object] = {}
    if args.simple:
        updates["simple_mode"] = True
    if args.seed is not None:
        updates["seed"] = args.seed
    if updates:
        config = config.model_copy(update=updates)

    llm = None if config.simple_mode else LLMClient(config.llm)
    controller = AssemblyController(config, llm=llm)
    timeout = config.forward_duration + config.phases.abort_delay + 5.0

    try:
        run_headless(controller, args.question, args.fps, timeout)
    except InvalidInput as exc:
        print(f"Invalid question: {exc}")
        return 2

    if controller.error:
        print(f"\nAssembly failed: {controller.error}")
        return 1

    topology = controller.topology
    if topology is not None:
        print(
            f"\nTopology: {topology.node_count} nodes, {topology.edge_count} edges, "
            f"density {topology.density * 100:.2f}%, avg degree {topology.avg_degree:.2f}, "
            f"radius {topology.bounding_radius:.2f}"
        )
    interpretation = controller.interpretation
    if interpretation is not None:
        if interpretation.fundamental_concepts:
            print(f"Fundamental: {', '.join(interpretation.fundamental_concepts)}")
        print(f"\n{interpretation.text}")

    if args.explain:
        meaning = controller.explain_shape()
        if meaning is not None:
            print(f"\nWhat this shape reveals:\n{meaning.text}")

    if args.snapshot:
        path = write_snapshot(Path(args.snapshot), controller.snapshot())
        print(f"\nSnapshot: {path}")
    return 0


def _layout(args: argparse.Namespace, config: Config) -> int:
    raw = json.loads(Path(args.matrix).read_text())
    try:
        matrix = DistanceMatrix(raw)
    except ValueError as exc:
        print(f"Invalid distance matrix: {exc}")
        return 2

    layout_config = config.layout
    if args.iterations is not None:
        layout_config = layout_config.model_copy(update={"iterations": args.iterations})
    seed = args.seed if args.seed is not None else config.seed
    engine = LayoutEngine(layout_config, rng=np.random.default_rng(seed))
    positions = engine.layout(matrix)
    print(json.dumps([[round(float(c), 4) for c in p] for p in positions], indent=2))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Semantic Assembly")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command")

    # ask command
    ask_parser = sub.add_parser("ask", help="Assemble a question headlessly on a simulated clock")
    ask_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    ask_parser.add_argument("question", help="Natural language question")
    ask_parser.add_argument("--fps", type=float, default=60.0, help="Simulated frame rate")
    ask_parser.add_argument("--simple", action="store_true", help="Skip the LLM, use a seeded pattern")
    ask_parser.add_argument("--seed", type=int, default=None, help="Seed for the simulation RNG")
    ask_parser.add_argument("--explain", action="store_true", help="Also explain what the shape reveals")
    ask_parser.add_argument(
        "--snapshot", type=str, default=None,
        help="Write the final frame as JSON to this path",
    )

    # layout command
    layout_parser = sub.add_parser("layout", help="Lay out a JSON distance matrix in 3D")
    layout_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    layout_parser.add_argument("matrix", help="Path to a JSON file holding an N×N distance matrix")
    layout_parser.add_argument("--iterations", type=int, default=None, help="Relaxation iterations")
    layout_parser.add_argument("--seed", type=int, default=None, help="Seed for the initial positions")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(Path(args.config) if args.config else None)

    if args.command == "ask":
        sys.exit(_ask(args, config))
    elif args.command == "layout":
        sys.exit(_layout(args, config))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
