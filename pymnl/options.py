r"""Global options.

Attributes
----------
digits : `int`
    Number of digits displayed by status updates. The default number of digits is ``7``. The number of digits can be
    changed to, for example, ``2``, with ``pymnl.options.digits = 2``.
verbose : `bool`
    Whether to output status updates. By default, verbosity is turned on. Verbosity can be turned off with
    ``pymnl.options.verbose = False``.
verbose_tracebacks : `bool`
    Whether to include full tracebacks in error messages. By default, full tracebacks are turned off. These can be
    useful when attempting to find the source of an error message. Tracebacks can be turned on with
    ``pymnl.options.verbose_tracebacks = True``.
verbose_output : `callable`
    Function used to output status updates. The default function is simply ``print``. The function can be changed, for
    example, to include an indicator that statuses are from this package, with
    ``pymnl.options.verbose_output = lambda x: print(f"pymnl: {x}")``.
flush_output : `bool`
    Whether to call ``sys.stdout.flush()`` after outputting a status update. By default, output is not flushed to
    standard output.
dtype : `dtype`
    The data type used for internal calculations, which is by default ``numpy.float64``. Although this data type will
    be used internally, ``numpy.float64`` will be used when passing arrays to optimization routines, which may not
    support extended precision.
finite_differences_epsilon : `float`
    Perturbation :math:`\epsilon` used to numerically approximate derivatives with central finite differences:

    .. math:: f'(x) = \frac{f(x + \epsilon / 2) - f(x - \epsilon / 2)}{\epsilon}.

    By default, this is the square root of the machine epsilon: ``numpy.sqrt(numpy.finfo(options.dtype).eps)``. It is
    used to compute the Hessian of the log-likelihood at the estimated coefficients.

probability_floor : `float`
    Small positive number added to choice probabilities before their logarithms are taken when evaluating the
    log-likelihood, which is by default ``1e-10``. Utilities are already shifted by their maximum within each consumer
    before being exponentiated, so probabilities of chosen products are only exactly zero when utilities differ by
    more than roughly ``745``. The floor guards against the resulting infinite logarithms and changes each term of the
    log-likelihood by at most ``floor / P`` in relative terms. It can be disabled with
    ``pymnl.options.probability_floor = 0``.
pseudo_inverses : `bool`
    Whether to compute Moore-Penrose pseudo-inverses of matrices with :func:`scipy.linalg.pinv` instead of their classic
    inverses with :func:`scipy.linalg.inv`. This is by default ``True``. Up to small numerical differences, the
    pseudo-inverse is identical to the classic inverse for invertible matrices. Pseudo-inverses help when the Hessian
    of the log-likelihood is singular, for example when a characteristic never varies.
singular_tol : `float`
    Tolerance for detecting singular matrices, which is by default ``1 / numpy.finfo(options.dtype).eps``. If the
    Hessian has a condition number larger than this tolerance, a warning will be displayed. To disable singularity
    checks, set ``pymnl.options.singular_tol = numpy.inf``.

"""

import numpy as _np


digits = 7
verbose = True
verbose_tracebacks = False
verbose_output = print
flush_output = False
dtype = _np.float64
finite_differences_epsilon = _np.sqrt(_np.finfo(dtype).eps)
probability_floor = 1e-10
pseudo_inverses = True
singular_tol = 1 / _np.finfo(dtype).eps
