"""
Layer and layer-stack containers plus PNG-directory I/O.
"""

from resin_layers.stack.io import load_layer_directory, save_layer_directory
from resin_layers.stack.layers import Layer, LayerStack

__all__ = [
    "Layer",
    "LayerStack",
    "load_layer_directory",
    "save_layer_directory",
]
