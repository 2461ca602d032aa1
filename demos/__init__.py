"""Data-association examples.

Examples:
    - example_nn_vs_jcbb.py: Monte-Carlo comparison of nearest-neighbour and
      JCBB association on synthetic 2D maps with correlated predictions

Dependencies:
    - dataassoc.association: compatibility tests, NN and JCBB search
    - tqdm: progress over trials
    - numpy: scenario generation
"""

__version__ = "0.1.0"

__all__ = []
