"""
EOS module: tabulated and analytic opacity / equation-of-state providers.
"""

from .opacity_table import OpacityTable, AnalyticOpacity, load_opacity, tabulate_opacity

__all__ = ["OpacityTable", "AnalyticOpacity", "load_opacity", "tabulate_opacity"]
