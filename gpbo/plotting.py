from pathlib import Path
from typing import Dict, List
import numpy as np
import pandas as pd
import matplotlib
import matplotlib.pyplot as plt
from IPython.display import display


def setup_plots(small_plot=False):
    if small_plot:
        matplotlib.rcParams.update({"axes.labelsize": "large"})
    else:
        matplotlib.rcParams.update({"axes.labelsize": "medium"})


def store_and_show_fig(root, fig, exp_name, name, show=False, lgd=None, small_plot=False):
    setup_plots(small_plot=small_plot)
    Path(f"{root}cache/{exp_name}").mkdir(parents=True, exist_ok=True)
    fig.savefig(
        f"{root}cache/{exp_name}/{name}.svg",
        bbox_extra_artists=None if lgd is None else (lgd,),
        bbox_inches="tight",
        format="svg",
    )
    if show:
        display(fig)


def plot_convergence(root, exp_name, df: pd.DataFrame, title="convergence", save=True):
    """
    Plots the observations, their running maximum and the values at the inferred maximizers of a single run.

    :param df: Results of a run as returned by `BOResults.to_dataframe`.
    """
    fig, ax = plt.subplots()
    ax.scatter(df.index, df["y"], s=8, color="gray", label="observation")
    ax.plot(df.index, df["y"].cummax(), label="best observation")
    ax.plot(df.index, df["guess_val"], label="posterior mean at guess")
    if not df["infer_val"].isna().all():
        ax.plot(df.index, df["infer_val"], linestyle="--", label="objective at guess")
    ax.set_xlabel("t")
    ax.set_ylabel("value")
    ax.set_title(title)
    lgd = ax.legend(loc="center left", bbox_to_anchor=(1, 0.5))
    if save:
        store_and_show_fig(root, fig, exp_name, title, lgd=lgd)
    return fig


def prepare_df(dfs: Dict[str, List[pd.DataFrame]], col: str, negate=False, T=None):
    """Mean and standard error of `col` across seeds, one column per algorithm."""
    means, stds = {}, {}
    for name, runs in dfs.items():
        df_concat = pd.concat([df[col] for df in runs], axis=1)
        T_ = T if T is not None else df_concat.shape[0]
        values = df_concat[:T_].replace([np.inf, -np.inf], np.nan)
        if negate:
            values = -values
        means[name] = values.mean(axis=1)
        stds[name] = values.std(axis=1) / np.sqrt(values.count(axis=1))
    return pd.DataFrame(means), pd.DataFrame(stds)


def plot_result(
    root,
    exp_name,
    dfs: Dict[str, List[pd.DataFrame]],
    col,
    title,
    xlabel,
    ylabel,
    xlim=None,
    ylim=None,
    negate=False,
    T=None,
    legend=True,
    save=True,
    small_plot=False,
    constlines=None,
):
    """Compares algorithms by the mean (and standard error across seeds) of `col`."""
    mean, std = prepare_df(dfs, col, negate=negate, T=T)

    fig, ax = plt.subplots()
    for name in mean.columns:
        ax.plot(mean.index, mean[name], label=name)
        ax.fill_between(
            mean.index,
            mean[name] - std[name],
            mean[name] + std[name],
            alpha=0.2,
        )
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.set_xlim(xlim)
    ax.set_ylim(ylim)
    ax.set_title(title)
    lgd = ax.legend(loc="center left", bbox_to_anchor=(1, 0.5)) if legend else None

    if constlines is not None:
        for constline in constlines:
            ax.axhline(y=constline, color="black", linestyle="--")

    if save:
        store_and_show_fig(root, fig, exp_name, title, lgd=lgd, small_plot=small_plot)
    return fig
