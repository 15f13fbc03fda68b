"""Data construction."""

from pathlib import Path
import pickle
import re
from typing import Dict, Mapping, Optional, Union

import numpy as np

from . import exceptions, options
from .utilities.basics import Array, RecArray, extract_names, structure_matrices


def reshape_observations(
        wide_data: Mapping, J: Optional[int] = None, id_name: str = 'id', choice_prefix: str = 'choice_',
        featured_prefix: str = 'featured_', price_prefix: str = 'price_') -> RecArray:
    r"""Reshape wide observations with one row per consumer into long observations with one row per consumer and
    product.

    Wide data have a consumer ID and, for each product :math:`j = 1, \dots, J`, a choice indicator, a featured
    indicator, and a price. Long data repeat each consumer's ID :math:`J` times and add :math:`J - 1` brand
    indicators. Product :math:`J` is the reference category, so it does not have an indicator.

    This is a purely structural transformation. Beyond checking that every expected field exists and that choice
    indicators are well-formed, no values are validated. For example, prices are not required to be positive.

    Parameters
    ----------
    wide_data : `structured array-like`
        Each row corresponds to a consumer. Fields with multiple columns are not supported. The convenience function
        :func:`read_observations` loads such data from a CSV file. Fields:

            - **id** : (`object`) - Unique consumer IDs. The field name can be changed with ``id_name``.

            - **choice_1, choice_2, ...** : (`numeric`) - Indicators equal to one for the single chosen product and zero
              otherwise. The prefix can be changed with ``choice_prefix``.

            - **featured_1, featured_2, ...** : (`numeric`) - Indicators for whether each product was featured. The
              prefix can be changed with ``featured_prefix``.

            - **price_1, price_2, ...** : (`numeric`) - Product prices. The prefix can be changed with ``price_prefix``.

    J : `int, optional`
        Number of products. By default, this is the number of consecutively numbered choice fields starting at one.
    id_name : `str, optional`
        Name of the consumer ID field. By default, this is ``'id'``.
    choice_prefix : `str, optional`
        Prefix of choice indicator fields. By default, this is ``'choice_'``.
    featured_prefix : `str, optional`
        Prefix of featured indicator fields. By default, this is ``'featured_'``.
    price_prefix : `str, optional`
        Prefix of price fields. By default, this is ``'price_'``.

    Returns
    -------
    `recarray`
        Long observations. Each of the :math:`N \times J` rows corresponds to a consumer and product, and rows for each
        consumer are contiguous and ordered by product. Fields:

            - **consumer_id** : (`object`) - Consumer IDs.

            - **product_id** : (`int`) - Product IDs that take on values from ``1`` to ``J``.

            - **chosen** : (`int`) - Whether the consumer chose the product.

            - **featured** : (`numeric`) - Whether the product was featured.

            - **price** : (`numeric`) - Product prices.

            - **is_brand_1, ..., is_brand_{J-1}** : (`int`) - Brand indicators.

    Raises
    ------
    SchemaError
        If an expected field is missing, if fields have different numbers of rows, if consumer IDs are not unique, or if
        choice indicators are not all zero or one and do not sum to exactly one for every consumer.

    Examples
    --------
    .. code-block:: python

       long_data = pymnl.reshape_observations({
           'id': [1, 2],
           'choice_1': [1, 0], 'choice_2': [0, 1],
           'featured_1': [0, 0], 'featured_2': [1, 0],
           'price_1': [1.0, 1.0], 'price_2': [2.0, 1.5],
       })

    """
    names = extract_names(wide_data)

    # determine the number of products
    if J is None:
        pattern = re.compile(rf'^{re.escape(choice_prefix)}(\d+)$')
        indices = {int(m.group(1)) for m in (pattern.match(n) for n in names) if m is not None}
        J = 0
        while J + 1 in indices:
            J += 1
    if not isinstance(J, int) or J < 2:
        raise exceptions.SchemaError(f"There must be choice fields for at least two products, but J is {J}.")

    # validate that all fields are present
    fields = {p: [f'{p}{j}' for j in range(1, J + 1)] for p in [choice_prefix, featured_prefix, price_prefix]}
    missing = [n for n in [id_name, *(n for f in fields.values() for n in f)] if n not in names]
    if missing:
        raise exceptions.SchemaError(f"Missing fields: {', '.join(missing)}.")

    # load the data
    try:
        ids = np.asarray(wide_data[id_name]).flatten()
        choices = np.column_stack([np.asarray(wide_data[n]).flatten() for n in fields[choice_prefix]])
        featured = np.column_stack([np.asarray(wide_data[n]).flatten() for n in fields[featured_prefix]])
        prices = np.column_stack([np.asarray(wide_data[n]).flatten() for n in fields[price_prefix]])
    except ValueError as exception:
        raise exceptions.SchemaError(f"Fields could not be stacked: {exception}.") from exception
    if not ids.shape[0] == choices.shape[0] == featured.shape[0] == prices.shape[0]:
        raise exceptions.SchemaError("All fields must have the same number of rows.")
    if ids.size == 0:
        raise exceptions.SchemaError("There must be at least one consumer.")

    # validate consumer IDs and choices
    unique_ids, counts = np.unique(ids, return_counts=True)
    if (counts > 1).any():
        raise exceptions.SchemaError(f"Consumer IDs are not unique: {list(unique_ids[counts > 1][:10])}.")
    malformed = ~np.isin(choices, [0, 1]).all(axis=1) | (choices.sum(axis=1) != 1)
    if malformed.any():
        raise exceptions.SchemaError(
            f"Choice indicators are not zero or one and summing to one for {malformed.sum()} consumers, including "
            f"consumers with IDs {list(ids[malformed][:10])}."
        )

    # stack the data so that each consumer's products are contiguous
    N = ids.size
    product_ids = np.tile(np.arange(1, J + 1, dtype=np.int64), N)
    mapping = {
        'consumer_id': (np.repeat(ids, J), ids.dtype if ids.dtype.kind in 'iub' else np.object_),
        'product_id': (product_ids, np.int64),
        'chosen': (choices.flatten().astype(np.int64), np.int64),
        'featured': (featured.flatten(), options.dtype),
        'price': (prices.flatten(), options.dtype)
    }
    for k in range(1, J):
        mapping[f'is_brand_{k}'] = ((product_ids == k).astype(np.int64), np.int64)
    return structure_matrices(mapping)


def read_observations(path: Union[str, Path], delimiter: str = ',') -> Dict[str, Array]:
    r"""Load wide observations from a delimited text file.

    The file should have a header row with the fields ``id, y1, ..., yJ, f1, ..., fJ, p1, ..., pJ``, which are choice
    indicators, featured indicators, and prices for products :math:`j = 1, \dots, J`, and one row for each consumer. No
    values can be missing.

    Parameters
    ----------
    path : `str or Path`
        Location of the file.
    delimiter : `str, optional`
        Field delimiter, which is by default a comma.

    Returns
    -------
    `dict`
        Wide observations with fields renamed to those expected by :func:`reshape_observations`: ``id``, ``choice_j``,
        ``featured_j``, and ``price_j``. Other fields are kept as they are.

    Raises
    ------
    SchemaError
        If the file does not have a header or if any values are missing.

    """
    data = np.genfromtxt(path, delimiter=delimiter, names=True, dtype=None, encoding='utf-8', usemask=True)
    if data.dtype.names is None:
        raise exceptions.SchemaError(f"The file '{path}' does not have a header row.")

    # rename short field names and check for missing values, which are masked regardless of the field's type
    prefixes = {'y': 'choice_', 'f': 'featured_', 'p': 'price_'}
    mapping: Dict[str, Array] = {}
    for name in data.dtype.names:
        column = np.ma.atleast_1d(data[name])
        if np.ma.getmaskarray(column).any():
            raise exceptions.SchemaError(f"The field '{name}' has missing values.")
        column = np.asarray(column.filled())
        if column.dtype.kind == 'f' and np.isnan(column).any():
            raise exceptions.SchemaError(f"The field '{name}' has missing values.")
        if column.dtype.kind in 'US' and (column == '').any():
            raise exceptions.SchemaError(f"The field '{name}' has missing values.")
        match = re.match(r'^([yfp])(\d+)$', name)
        mapping[f'{prefixes[match.group(1)]}{match.group(2)}' if match else name] = column

    return mapping


def data_to_dict(data: RecArray, ignore_empty: bool = True) -> Dict[str, Array]:
    r"""Convert a NumPy record array into a dictionary.

    Long observations created by :func:`reshape_observations` are structured as NumPy record arrays in which every
    field is a column vector, which can be cumbersome when working with data types such as the
    :class:`pandas.DataFrame`. This function converts them into dictionaries that map field names to one-dimensional
    arrays. Matrices in the original record array are split into as many fields as there are columns.

    Parameters
    ----------
    data : `recarray`
        Record array created by this package.
    ignore_empty : `bool, optional`
        Whether to ignore matrices with zero size. By default, these are ignored.

    Returns
    -------
    `dict`
        The data re-structured as a dictionary.

    """
    if not isinstance(data, np.recarray):
        raise TypeError("data must be a NumPy record array.")

    mapping: Dict[str, Array] = {}
    for key in data.dtype.names:
        if len(data[key].shape) > 2:
            raise ValueError("Arrays with more than two dimensions are not supported.")
        if ignore_empty and data[key].size == 0:
            continue
        if len(data[key].shape) == 1 or data[key].shape[1] == 1 or data[key].size == 0:
            mapping[key] = data[key].flatten()
            continue
        for index in range(data[key].shape[1]):
            new_key = f'{key}{index}'
            if new_key in data.dtype.names:
                raise KeyError(f"'{key}' cannot be split into columns because '{new_key}' is already a field.")
            mapping[new_key] = data[key][:, index].flatten()

    return mapping


def save_pickle(x: object, path: Union[str, Path]) -> None:
    """Save an object as a pickle file.

    This is a simple wrapper around `pickle.dump`.

    Parameters
    ----------
    x : `object`
        Object to be pickled.
    path : `str or Path`
        File path to which the object will be saved.

    """
    with open(path, 'wb') as handle:
        pickle.dump(x, handle)


def read_pickle(path: Union[str, Path]) -> object:
    """Load a pickled object into memory.

    This is a simple wrapper around `pickle.load`.

    Parameters
    ----------
    path : `str or Path`
        File path of a pickled object.

    Returns
    -------
    `object`
        The unpickled object.

    """
    with open(path, 'rb') as handle:
        return pickle.load(handle)
