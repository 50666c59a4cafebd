#!/usr/bin/env python3
"""
Example: Random Walk Design for the Reproduction Number

Two countries are observed over ten days. The reproduction number is modelled
with an intercept, a lockdown effect and a weekly random walk that is
separate for each country:

    R(country, date) ~ 1 + rw(time=week, gr=country) + lockdown

This script builds the sparse design matrix of the random walk and the data
block inputs the sampler would receive.
"""

import numpy as np
import pandas as pd

from epidemia import Formula, random_walk_design, terms_rw

dates = pd.date_range("2020-02-22", periods=10, freq="D")
data = pd.DataFrame(
    {
        "country": np.repeat(["France", "Italy"], len(dates)),
        "date": np.tile(dates, 2),
    }
)
data["week"] = data["date"].dt.isocalendar().week.astype(int)
data["lockdown"] = (data["date"] >= "2020-02-27").astype(int)

formula = Formula("R(country, date) ~ 1 + rw(time=week, gr=country) + lockdown")
print(f"Formula: {formula}")
print(f"Random walk terms: {terms_rw(formula)}")

walks = random_walk_design(formula, data)
print(f"Processes per term: {walks.num_processes.tolist()}")
print(f"Periods per process: {walks.periods_per_process.tolist()}")
print(f"Design matrix: {walks.design_matrix.shape[0]} rows x {walks.num_columns} columns")
print(walks.design_matrix.toarray().astype(int))

stan_data = walks.to_stan_data()
print(f"Non-zero entries: {stan_data['ac_nnz']}")
