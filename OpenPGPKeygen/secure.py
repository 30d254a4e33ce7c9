""" Wipeable buffers for passphrases, derived keys and decrypted secrets.

Python objects such as bytes and int are immutable and can not be cleared,
so everything sensitive that this package owns lives in a bytearray that is
zeroed as soon as it is no longer needed.
"""

import ctypes
import hmac
import warnings

__all__ = ['SecureBytes', 'wipe']


def _buffer_address(data):
    return ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data))


def wipe(data):
    """ Overwrite a bytearray with zeros in place. Other types are ignored. """
    if not isinstance(data, bytearray) or len(data) == 0:
        return
    try:
        ctypes.memset(_buffer_address(data), 0, len(data))
    except (TypeError, ValueError, BufferError) as exc:
        warnings.warn("ctypes.memset failed, using fallback: %s" % exc, RuntimeWarning)
        for i in range(len(data)):
            data[i] = 0


class SecureBytes(object):
    """ Owned copy of sensitive bytes, zeroed by clear().

        Use as a context manager for guaranteed cleanup. The backing buffer
        is only lent out for the duration of a with_buffer() call.
    """

    __slots__ = ('_data', '_cleared')

    def __init__(self, data):
        self._data = bytearray(data)
        self._cleared = False

    @classmethod
    def from_string(cls, s, encoding='utf-8'):
        """ Create from text, zeroing the intermediate encoding """
        encoded = bytearray(s, encoding)
        try:
            return cls(encoded)
        finally:
            wipe(encoded)

    @classmethod
    def adopt(cls, data):
        """ Take a bytearray, wiping the caller's copy """
        try:
            return cls(data)
        finally:
            wipe(data)

    def __del__(self):
        self.clear()

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.clear()

    def clear(self):
        """ Zero memory. Idempotent. """
        if self._cleared:
            return
        wipe(self._data)
        self._cleared = True

    @property
    def is_cleared(self):
        return self._cleared

    def with_buffer(self, func):
        """ Call func with the backing bytearray and return its result.
            func must not keep a reference to the buffer.
        """
        self._check_cleared()
        return func(self._data)

    def __len__(self):
        return len(self._data)

    def __bool__(self):
        return not self._cleared and len(self._data) > 0

    def __repr__(self):
        if self._cleared:
            return "SecureBytes(<cleared>)"
        return "SecureBytes(<%d bytes>)" % len(self._data)

    def __eq__(self, other):
        """ Constant-time comparison """
        if isinstance(other, SecureBytes):
            if self._cleared or other._cleared:
                return False
            return hmac.compare_digest(self._data, other._data)
        if isinstance(other, (bytes, bytearray)):
            if self._cleared:
                return False
            return hmac.compare_digest(self._data, other)
        return NotImplemented

    def __hash__(self):
        raise TypeError("SecureBytes is not hashable")

    def _check_cleared(self):
        if self._cleared:
            raise RuntimeError("SecureBytes has been cleared")
