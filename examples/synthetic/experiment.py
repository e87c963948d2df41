import argparse
import time
from jax import config
import jax.random as jr
import wandb

from gpbo import BOConfig, gpopt
from gpbo.function.synthetic import FUNCTIONS
from gpbo.plotting import plot_convergence

config.update("jax_enable_x64", True)

T = 50
NOISE_STD = 1e-2


def experiment(seed: int, alg: str, name: str, function: str, T: int, use_wandb: bool):
    if use_wandb:
        wandb.init(
            name=name,
            project="gpbo",
            config={
                "T": T,
                "noise_std": NOISE_STD,
                "seed": seed,
                "alg": alg,
                "function": function,
            },
        )
    print("SEED:", seed, "ALG:", alg, "FUNCTION:", function)

    f = FUNCTIONS[function](jr.PRNGKey(seed), noise_std=NOISE_STD)
    config = BOConfig(
        bo_method=alg,
        seed=seed,
        n_init=1,
        infer_objective=f.evaluate,
        log_wandb=use_wandb,
    )
    results = gpopt(f, f.xmin, f.xmax, T, config=config)

    df = results.to_dataframe()
    df["regret"] = f.maximum - df["infer_val"]
    plot_convergence("", f"{name}/{alg}", df, title=f"seed_{seed}")
    df.to_pickle(f"cache/{name}/{alg}/seed_{seed}")
    print("Final guess:", df.iloc[-1].filter(like="guess_").to_numpy())
    print("Final regret:", df["regret"].iloc[-1])


def main(args):
    t_start = time.process_time()
    experiment(
        seed=args.seed,
        alg=args.alg,
        name=args.name,
        function=args.function,
        T=args.T,
        use_wandb=args.wandb,
    )
    print("Total time taken:", time.process_time() - t_start, "seconds")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--alg", type=str, default="JES")
    parser.add_argument("--name", type=str, default="synthetic")
    parser.add_argument("--function", type=str, default="branin", choices=FUNCTIONS)
    parser.add_argument("--T", type=int, default=T)
    parser.add_argument("--wandb", action="store_true")
    args = parser.parse_args()
    main(args)
