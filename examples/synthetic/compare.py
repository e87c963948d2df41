import argparse
from pathlib import Path
import pandas as pd

from gpbo.plotting import plot_result


def main(args):
    dfs = {}
    for alg in args.algs:
        runs = sorted(Path(f"cache/{args.name}/{alg}").glob("seed_*"))
        dfs[alg] = [pd.read_pickle(run) for run in runs if run.suffix == ""]
    dfs = {alg: runs for alg, runs in dfs.items() if len(runs) > 0}
    assert len(dfs) > 0, f"No results under cache/{args.name}"

    plot_result(
        "",
        args.name,
        dfs,
        col="regret",
        title="simple_regret",
        xlabel="t",
        ylabel="simple regret",
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--name", type=str, default="synthetic")
    parser.add_argument(
        "--algs",
        nargs="+",
        default=["JES", "MES", "MES-R", "PES", "FITBO", "EI", "PI", "UCB", "EST"],
    )
    args = parser.parse_args()
    main(args)
