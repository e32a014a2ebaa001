"""
PyTorch Tutorial Recipes

Runnable, configuration-driven versions of the tutorial pages: fitting
sin(x) with a third order polynomial through torch.optim, and classifying
Speech Commands with the M5 convolutional network through torchaudio.
"""

__version__ = "1.0.0"
