"""
stacks - Stacked Ensembles
==========================

Build model stacks from the held-out predictions of many candidate models:

    from stacks import stacks, fit_resamples, ResamplePartition, SklearnSpec

    partition = ResamplePartition.vfold(len(X), v=5, random_state=1)
    ridge = fit_resamples(SklearnSpec(Ridge()), partition, X, y, name="ridge")
    forest = fit_resamples(SklearnSpec(RandomForestRegressor()), partition, X, y, name="forest")

    ensemble = (
        stacks()
        .add_candidates(ridge)
        .add_candidates(forest)
        .blend_predictions()
        .fit_members(X, y)
    )
    ensemble.predict(X_new)
"""

from .core import (
    StackConfig,
    RegistryConfig,
    BlendConfig,
    RefitConfig,
    LoggingConfig,
    StacksError,
    PartitionMismatch,
    DuplicateCandidate,
    SolverNonConvergence,
    RefitFailure,
    EmptyEnsemble,
    NotFittedError,
    Mode,
    Candidate,
    RegistryHandle,
    setup_logger,
)
from .resampling import ResamplePartition, fit_resamples
from .models import CandidateSpec, FunctionSpec, SklearnSpec, TorchMLPSpec, candidate_grid
from .ensemble import (
    CandidateRegistry,
    BlendingSolver,
    BlendModel,
    MemberRefitter,
    PredictionDispatcher,
    FittedEnsemble,
    ModelStack,
    stacks,
)

__all__ = [
    'StackConfig',
    'RegistryConfig',
    'BlendConfig',
    'RefitConfig',
    'LoggingConfig',
    'StacksError',
    'PartitionMismatch',
    'DuplicateCandidate',
    'SolverNonConvergence',
    'RefitFailure',
    'EmptyEnsemble',
    'NotFittedError',
    'Mode',
    'Candidate',
    'RegistryHandle',
    'setup_logger',
    'ResamplePartition',
    'fit_resamples',
    'CandidateSpec',
    'FunctionSpec',
    'SklearnSpec',
    'TorchMLPSpec',
    'candidate_grid',
    'CandidateRegistry',
    'BlendingSolver',
    'BlendModel',
    'MemberRefitter',
    'PredictionDispatcher',
    'FittedEnsemble',
    'ModelStack',
    'stacks',
]

__version__ = '0.1.0'
