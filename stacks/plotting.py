"""
Plots
=====
plotly figures for blends and fitted ensembles.

    type="performance"  CV error against penalty, selected penalty marked
    type="members"      number of non-zero members against penalty
    type="weights"      bar chart of member coefficients

Penalty axes are logarithmic; vertical markers are placed in log10 units.
"""

import math

import plotly.graph_objects as go
from plotly.subplots import make_subplots

PLOT_TYPES = ('performance', 'members', 'weights')


def plot_performance(blend_model) -> go.Figure:
    path = blend_model.path

    fig = make_subplots(specs=[[{"secondary_y": True}]])
    fig.add_trace(
        go.Scatter(
            x=path['penalty'],
            y=path['mean'],
            error_y=dict(type='data', array=path['std_err'], visible=True),
            mode='lines+markers',
            name=f"CV {blend_model.metric}",
        ),
        secondary_y=False,
    )
    fig.add_trace(
        go.Scatter(
            x=path['penalty'],
            y=path['n_members'],
            mode='lines+markers',
            name='members',
            line=dict(dash='dot'),
        ),
        secondary_y=True,
    )
    fig.add_vline(
        x=math.log10(blend_model.penalty),
        line_dash='dash',
        annotation_text=f"selected {blend_model.penalty:g}",
    )
    fig.update_xaxes(type='log', title_text='penalty')
    fig.update_yaxes(title_text=blend_model.metric, secondary_y=False)
    fig.update_yaxes(title_text='members', secondary_y=True)
    fig.update_layout(title='Blend performance by penalty')
    return fig


def plot_members(blend_model) -> go.Figure:
    path = blend_model.path
    fig = go.Figure(data=[
        go.Scatter(x=path['penalty'], y=path['n_members'], mode='lines+markers')
    ])
    fig.add_vline(x=math.log10(blend_model.penalty), line_dash="dash")
    fig.update_xaxes(type='log', title_text='penalty')
    fig.update_yaxes(title_text='non-zero members')
    fig.update_layout(title='Members by penalty')
    return fig


def plot_weights(weights) -> go.Figure:
    weights = weights[weights != 0].sort_values()
    fig = go.Figure(data=[
        go.Bar(x=weights.to_numpy(), y=list(weights.index), orientation='h')
    ])
    fig.update_xaxes(title_text='stacking coefficient')
    fig.update_layout(title='Member weights')
    return fig


def autoplot(blend_model, type: str = "performance", weights=None) -> go.Figure:
    """
    Plot a blend.

    Args:
        blend_model: Fitted BlendModel
        type: 'performance', 'members' or 'weights'
        weights: Candidate weights for type='weights' (defaults to the blend's)
    """
    if type == 'performance':
        return plot_performance(blend_model)
    if type == 'members':
        return plot_members(blend_model)
    if type == 'weights':
        return plot_weights(blend_model.candidate_weights() if weights is None else weights)
    raise ValueError(f"type must be one of {PLOT_TYPES}, got '{type}'")
