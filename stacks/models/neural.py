"""
Neural Network Candidates
=========================

Small feed-forward network trained full-batch with Adam.

Inputs (and regression targets) are standardized with statistics from the
rows passed to fit().
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import logging
import numpy as np
import pandas as pd
import torch
import torch.nn as nn

from ..core.types import Mode
from .base import CandidateSpec

logger = logging.getLogger(__name__)


class MLPNet(nn.Module):
    """Two-layer perceptron: Linear -> ReLU -> Dropout -> Linear."""

    def __init__(
        self,
        input_size: int,
        hidden_size: int = 32,
        output_size: int = 1,
        dropout: float = 0.0
    ):
        super().__init__()

        self.net = nn.Sequential(
            nn.Linear(input_size, hidden_size),
            nn.ReLU(),
            nn.Dropout(dropout),
            nn.Linear(hidden_size, output_size),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.net(x)


@dataclass
class FittedNet:
    """Trained network plus the scaling it was trained with."""
    net: MLPNet
    x_mean: np.ndarray
    x_std: np.ndarray
    y_mean: float = 0.0
    y_std: float = 1.0
    classes: List[Any] = field(default_factory=list)


def _as_matrix(X) -> np.ndarray:
    values = X.to_numpy() if hasattr(X, 'to_numpy') else np.asarray(X)
    values = values.astype(np.float32)
    if values.ndim == 1:
        values = values.reshape(-1, 1)
    return values


class TorchMLPSpec(CandidateSpec):
    """
    PyTorch MLP candidate.

    Parameters:
    -----------
    mode : str
        'regression' (MSE loss) or 'classification' (cross-entropy)
    hidden_size : int
        Hidden layer width
    epochs : int
        Full-batch training iterations (the fit's iteration budget)
    lr : float
        Adam learning rate
    dropout : float
        Dropout probability in the hidden layer
    random_state : int
        Seed for weight initialization
    """

    def __init__(
        self,
        mode: str = "regression",
        hidden_size: int = 32,
        epochs: int = 200,
        lr: float = 0.01,
        dropout: float = 0.0,
        random_state: int = 42,
        device: Optional[str] = None
    ):
        if epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {epochs}")

        self.mode = Mode(mode)
        self.hidden_size = hidden_size
        self.epochs = epochs
        self.lr = lr
        self.dropout = dropout
        self.random_state = random_state
        self.device = torch.device(device or 'cpu')

    @property
    def params(self) -> Dict[str, Any]:
        return {
            'hidden_size': self.hidden_size,
            'epochs': self.epochs,
            'lr': self.lr,
            'dropout': self.dropout,
        }

    def fit(self, X, y) -> FittedNet:
        torch.manual_seed(self.random_state)

        x_values = _as_matrix(X)
        x_mean = x_values.mean(axis=0)
        x_std = x_values.std(axis=0)
        x_std[x_std == 0] = 1.0
        x_tensor = torch.from_numpy((x_values - x_mean) / x_std).to(self.device)

        y_values = np.asarray(y)

        if self.mode == Mode.CLASSIFICATION:
            classes = list(np.unique(y_values))
            lookup = {cls: i for i, cls in enumerate(classes)}
            targets = torch.tensor(
                [lookup[v] for v in y_values], dtype=torch.long, device=self.device
            )
            net = MLPNet(x_values.shape[1], self.hidden_size, len(classes), self.dropout)
            criterion = nn.CrossEntropyLoss()
            fitted = FittedNet(net=net, x_mean=x_mean, x_std=x_std, classes=classes)
        else:
            y_float = y_values.astype(np.float32)
            y_mean = float(y_float.mean())
            y_std = float(y_float.std()) or 1.0
            targets = torch.from_numpy((y_float - y_mean) / y_std).to(self.device).unsqueeze(1)
            net = MLPNet(x_values.shape[1], self.hidden_size, 1, self.dropout)
            criterion = nn.MSELoss()
            fitted = FittedNet(net=net, x_mean=x_mean, x_std=x_std, y_mean=y_mean, y_std=y_std)

        net.to(self.device)
        optimizer = torch.optim.Adam(net.parameters(), lr=self.lr)

        net.train()
        for epoch in range(self.epochs):
            optimizer.zero_grad()
            outputs = net(x_tensor)
            loss = criterion(outputs, targets)
            loss.backward()
            optimizer.step()

        logger.debug(f"MLP trained for {self.epochs} epochs, final loss {loss.item():.4f}")
        return fitted

    def predict(self, model: FittedNet, X):
        x_values = (_as_matrix(X) - model.x_mean) / model.x_std
        x_tensor = torch.from_numpy(x_values.astype(np.float32)).to(self.device)

        model.net.eval()
        with torch.no_grad():
            outputs = model.net(x_tensor)

        if self.mode == Mode.CLASSIFICATION:
            proba = torch.softmax(outputs, dim=1).cpu().numpy()
            return pd.DataFrame(proba, columns=model.classes)

        return outputs.cpu().numpy().flatten() * model.y_std + model.y_mean

    def __repr__(self) -> str:
        return (
            f"TorchMLPSpec(mode={self.mode.value}, hidden_size={self.hidden_size}, "
            f"epochs={self.epochs})"
        )
