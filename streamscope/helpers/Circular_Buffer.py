############################################################################################################################################
# Circular Buffer
#
# Fixed number of rows, the oldest rows are overwritten. Columns grow when wider data arrives, missing
# values are NaN.
#
# functions:
#   - push(ndarray) add new rows, returns the number of rows that were evicted
#   - clear         reset counters and fill data with NaN
#   - last(n)       newest n rows of data
#   - first(n)      oldest n rows of data
#   - resize(rows)  change row capacity, the newest rows are kept
#   - select_columns(columns) keep only the listed columns, the column capacity shrinks back
# properties:
#   - data     -> ndarray all valid data ordered from oldest to newest
#   - capacity -> (rows, columns) total allocated size
#   - shape    -> (nrows, ncols) number of valid rows and columns
#   - counter  -> (oldest, latest) measurement number (auto-incrementing)
#   - dtype    -> data type used by the buffer
#
# Urs Utzinger 2025
############################################################################################################################################
#
import numpy as np

class CircularBuffer:
    '''
    Circular buffer for storing numpy data of a floating data type.

    - Row capacity is fixed, pushing beyond it evicts the oldest rows.
    - Columns are added when wider data arrives.
    - Retrieval provides only valid rows and columns.
    - Tracks sample numbers for continuous measurements.
    '''

    def __init__(self, initial_rows, initial_columns, dtype=np.float64):
        ''' Initialize the circular buffer '''
        if initial_rows <= 0 or initial_columns <= 0:
            raise ValueError("initial_rows and initial_columns must be > 0")
        if not np.issubdtype(np.dtype(dtype), np.floating):
            raise TypeError("dtype must be a floating type to support NaN padding")
        self._nrows = initial_rows
        self._ncols = initial_columns
        self._min_cols = initial_columns
        self._dtype = dtype
        self._data = np.full((initial_rows, initial_columns), np.nan, dtype=self._dtype)

        self._head         = 0                                                 # Next insert position
        self._nRowEntries  = 0                                                 # Number of valid (populated) row entries
        self._nColEntries  = 0                                                 # Tracks how many columns have been populated
        self._oldest       = 0                                                 # Tracks the oldest "measurement number"
        self._latest       = 0                                                 # Tracks the newest "measurement number"

    def _grow_columns(self, num_new_cols: int) -> None:
        ncols = self._ncols
        columns_to_add = max(ncols // 2, num_new_cols - ncols)
        new_cols = ncols + columns_to_add
        new_data = np.empty((self._nrows, new_cols), dtype=self._dtype)
        new_data[:, :ncols] = self._data                                       # this is moderately costly operation
        new_data[:, ncols:] = np.nan
        self._data = new_data
        self._ncols = new_cols

    def push(self, data_array) -> int:
        ''' Add new rows, returns how many of the oldest rows were evicted '''

        if data_array is None:
            return 0

        if not (isinstance(data_array, np.ndarray) and data_array.dtype == self._dtype):
            data_array = np.asarray(data_array, dtype=self._dtype)

        if data_array.ndim == 1:
            data_array = data_array.reshape(1, -1)
        if data_array.size == 0:
            return 0

        num_new_rows, num_new_cols = data_array.shape
        if num_new_cols > self._ncols:
            self._grow_columns(num_new_cols)

        nrows = self._nrows
        head  = self._head
        nRowEntries = self._nRowEntries
        nColEntries = self._nColEntries

        evicted = max(0, nRowEntries + num_new_rows - nrows)

        if num_new_rows >= nrows:
            # Only the newest rows fit
            self._data[:, :num_new_cols] = data_array[-nrows:, :]
            if num_new_cols < nColEntries:
                self._data[:, num_new_cols:nColEntries] = np.nan
            self._head = 0
            self._nRowEntries = nrows
        else:
            end_pos = (head + num_new_rows) % nrows
            if end_pos <= head:
                first_part = nrows - head
                self._data[head:nrows, :num_new_cols] = data_array[:first_part, :]
                self._data[0:end_pos,  :num_new_cols] = data_array[first_part:, :]
                if num_new_cols < nColEntries:
                    self._data[head:nrows, num_new_cols:nColEntries] = np.nan
                    if end_pos:
                        self._data[0:end_pos, num_new_cols:nColEntries] = np.nan
            else:
                self._data[head:end_pos, :num_new_cols] = data_array
                if num_new_cols < nColEntries:
                    self._data[head:end_pos, num_new_cols:nColEntries] = np.nan
            self._head = end_pos
            self._nRowEntries = min(nRowEntries + num_new_rows, nrows)

        self._nColEntries = max(nColEntries, num_new_cols)
        self._latest += num_new_rows
        self._oldest = self._latest - self._nRowEntries + 1
        return evicted

    def clear(self):
        ''' Clear the buffer (set all values to NaN) '''
        self._data.fill(np.nan)
        self._head = 0
        self._nRowEntries = 0
        self._nColEntries = 0
        self._oldest = 0
        self._latest = 0

    def resize(self, rows: int) -> int:
        ''' New row capacity, keeps the newest rows, returns the number of rows dropped '''
        if rows <= 0:
            raise ValueError("rows must be > 0")
        latest  = self._latest
        kept    = self.last(rows).copy()
        dropped = self._nRowEntries - kept.shape[0]

        self._nrows = rows
        self._data  = np.full((rows, self._ncols), np.nan, dtype=self._dtype)
        n = kept.shape[0]
        if n:
            self._data[:n, :kept.shape[1]] = kept
        self._head = n % rows
        self._nRowEntries = n
        self._latest = latest
        self._oldest = latest - n + 1 if n else 0
        return dropped

    def select_columns(self, columns) -> int:
        ''' Keep the listed columns in the listed order, returns the number of columns removed '''
        columns = list(columns)
        if not columns:
            raise ValueError("at least one column must be kept")
        n       = self._nRowEntries
        kept    = self.data[:, columns] if n else None
        removed = max(0, self._nColEntries - len(columns))

        self._ncols = max(self._min_cols, len(columns))
        self._data  = np.full((self._nrows, self._ncols), np.nan, dtype=self._dtype)
        if n:
            self._data[:n, :len(columns)] = kept
        self._head = n % self._nrows
        self._nColEntries = len(columns) if n else 0
        return removed

    def _ordered(self, start: int, n: int) -> np.ndarray:
        ''' n rows starting at physical row start, unwrapped '''
        nrows = self._nrows
        nColEntries = self._nColEntries
        end = start + n
        if end <= nrows:
            return self._data[start:end, :nColEntries]
        out = np.empty((n, nColEntries), dtype=self._dtype)
        first_len = nrows - start                                              # rows from start to end of buffer
        out[:first_len, :] = self._data[start:nrows, :nColEntries]
        out[first_len:, :] = self._data[0:end - nrows, :nColEntries]
        return out

    def last(self, n: int = 1) -> np.ndarray:
        ''' Retrieve the newest n valid data rows ordered from oldest to newest '''
        if n <= 0 or self._nRowEntries == 0 or self._nColEntries == 0:
            return np.empty((0, self._nColEntries), dtype=self._dtype)
        n = min(n, self._nRowEntries)
        return self._ordered((self._head - n) % self._nrows, n)

    def first(self, n: int = 1) -> np.ndarray:
        ''' Retrieve the oldest n valid data rows ordered from oldest to newest '''
        if n <= 0 or self._nRowEntries == 0 or self._nColEntries == 0:
            return np.empty((0, self._nColEntries), dtype=self._dtype)
        n = min(n, self._nRowEntries)
        return self._ordered((self._head - self._nRowEntries) % self._nrows, n)

    @property
    def data(self):
        ''' Retrieve valid data ordered from oldest to newest '''
        return self.first(self._nRowEntries)

    @property
    def shape(self):
        ''' Return the shape (populated rows, populated columns) of the buffer '''
        return (self._nRowEntries, self._nColEntries)

    @property
    def capacity(self):
        ''' Return the capacity (rows, columns) of the buffer '''
        return (self._nrows, self._ncols)

    @property
    def counter(self):
        ''' Return the oldest and newest measurement number'''
        return (self._oldest, self._latest)

    @property
    def dtype(self):
        ''' Return the data type '''
        return self._dtype

    def __len__(self):
        return self._nRowEntries
