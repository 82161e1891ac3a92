"""
Stairs vs. Elevator Choice Analysis Package
===========================================
Modules:
    config           – Configuration loading + dataset constants
    data_loading     – CSV/codebook loading, cleaning, participant filtering
    preprocessing    – Grouped split, grouped CV, feature recipe, missingness
    eda              – Participant and outcome descriptives
    evaluation       – Classification/ranking metrics, confusion matrix
    modeling         – Mixed-effects model tree, workflow, baselines, CV
    interpretability – Permutation importance, tree rules, random effects
"""

from stairchoice import config
from stairchoice import data_loading
from stairchoice import preprocessing
from stairchoice import eda
from stairchoice import evaluation
from stairchoice import modeling
from stairchoice import interpretability
