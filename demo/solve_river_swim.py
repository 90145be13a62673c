import argparse
import logging
import os
import sys

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT_DIR not in sys.path:
    sys.path.append(ROOT_DIR)

from demo.RiverSwimMDP import RiverSwimMDP
from rmdp.errors import RMDPError
from rmdp.RMDP import RMDP
from rmdp.solvers import solve
from rmdp.utils import install_logging

log = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Solve RiverSwim with plain, robust and optimistic objectives.")
    parser.add_argument('--length', type=int, default=6, help='Number of river segments')
    parser.add_argument('--discount', type=float, default=0.95)
    parser.add_argument('--budget', type=float, default=0.2, help='L1 ambiguity budget per state-action')
    parser.add_argument('--algorithm', default='mpi', choices=['vi', 'mpi'])
    parser.add_argument('--ambiguity', default='l1', choices=['l1', 'linf', 'shared-budget'])
    parser.add_argument('--log_level', default='INFO')
    args = parser.parse_args()

    install_logging(args.log_level)

    mdp = RiverSwimMDP(length=args.length, discount=args.discount, budget=args.budget)
    rmdp = RMDP.from_mdp(mdp)
    for s in range(rmdp.state_count()):
        rmdp.set_state_budget(s, args.budget)

    solutions = {}
    try:
        for objective in ('plain', 'robust', 'optimistic'):
            ambiguity = 'none' if objective == 'plain' else args.ambiguity
            log.info('Solving %s objective', objective)
            solutions[objective] = solve(rmdp, algorithm=args.algorithm, objective=objective,
                                         ambiguity=ambiguity)
    except RMDPError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    print("state |   plain  |  robust  | optimistic | robust action")
    print("------+----------+----------+------------+--------------")
    robust = solutions['robust']
    for s in range(rmdp.state_count()):
        action = rmdp.action_labels[s][robust.policy[s]]
        print(f"{s:>5} | {solutions['plain'].values[s]:8.4f} | {robust.values[s]:8.4f} | "
              f"{solutions['optimistic'].values[s]:10.4f} | {action}")

    for objective, solution in solutions.items():
        print(f"{objective}: {solution}")


if __name__ == '__main__':
    main()
