"""Configures NumPy so that it raises all warnings other than underflow as exceptions."""

import numpy as np


np.seterr(all='raise', under='ignore')
