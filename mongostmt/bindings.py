"""
### Parameter Bindings

Placeholders are bound by name with typed values:

```python
stmt.bind('UM_USER_NAME', Str('alice'))
stmt.bind('UM_TENANT_ID', Int32(-1234))
stmt.bind('UM_ID', Int64(10 ** 12))
stmt.bind('UM_REQUIRE_CHANGE', Bool(False))
stmt.bind('UM_CHANGED_TIME', Date(datetime.utcnow()))
```

or with the typed shortcuts: `bind_int()`, `bind_long()`, `bind_string()`, `bind_bool()`, `bind_date()`.

All bindings live in one flat mapping: binding the same name twice replaces the value.
"""

from collections import OrderedDict
from datetime import date, datetime, time, timezone

from bson.int64 import Int64 as BsonInt64

INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1
INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1


class TypedValue:
    """ A value bound to a placeholder, tagged with its type """

    __slots__ = ('value',)

    #: Name of the type, for error messages
    type_name = None

    def __init__(self, value):
        self.value = self._validate(value)

    def _validate(self, value):
        """ Validate and normalize the value

        :raises TypeError: wrong type
        :raises ValueError: out of range
        """
        raise NotImplementedError()

    def to_bson(self):
        """ Get the value as it is sent to the driver """
        return self.value

    def __eq__(self, other):
        return type(self) is type(other) and self.value == other.value

    def __hash__(self):
        return hash((type(self), self.value))

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.value)


class _IntegerValue(TypedValue):
    __slots__ = ()

    min_value = max_value = None

    def _validate(self, value):
        # bool is an int, but not a valid one
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError('{} value must be an integer, {} provided'
                            .format(self.type_name, type(value).__name__))
        if not self.min_value <= value <= self.max_value:
            raise ValueError('{} value out of range: {}'.format(self.type_name, value))
        return int(value)


class Int32(_IntegerValue):
    """ 32-bit integer """
    __slots__ = ()
    type_name = 'int'
    min_value, max_value = INT32_MIN, INT32_MAX


class Int64(_IntegerValue):
    """ 64-bit integer, sent to MongoDB as a BSON long """
    __slots__ = ()
    type_name = 'long'
    min_value, max_value = INT64_MIN, INT64_MAX

    def to_bson(self):
        return BsonInt64(self.value)


class Str(TypedValue):
    """ String """
    __slots__ = ()
    type_name = 'string'

    def _validate(self, value):
        if not isinstance(value, str):
            raise TypeError('string value must be a str, {} provided'.format(type(value).__name__))
        return value


class Bool(TypedValue):
    """ Boolean """
    __slots__ = ()
    type_name = 'bool'

    def _validate(self, value):
        if not isinstance(value, bool):
            raise TypeError('bool value must be a bool, {} provided'.format(type(value).__name__))
        return value


class Date(TypedValue):
    """ Date and time

        Accepts a `datetime`, a `date` (converted to midnight), or a POSIX timestamp (UTC).
        BSON has no pure date type, so dates always travel as datetimes.
    """
    __slots__ = ()
    type_name = 'date'

    def _validate(self, value):
        if isinstance(value, datetime):
            return value
        elif isinstance(value, date):
            return datetime.combine(value, time())
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        else:
            raise TypeError('date value must be a datetime, a date, or a timestamp; {} provided'
                            .format(type(value).__name__))


class Bindings:
    """ Name -> typed value registry

        No type checking against the template is done here:
        bindings are resolved against placeholders when a statement is compiled.
    """

    __slots__ = ('_values',)

    def __init__(self, values=None):
        #: OrderedDict[str, TypedValue]
        self._values = OrderedDict()
        for name, value in (values or {}).items():
            self.bind(name, value)

    def bind(self, name, value):
        """ Bind a typed value to a name. Last write wins.

        :type name: str
        :type value: TypedValue
        """
        if not isinstance(name, str):
            raise TypeError('Parameter name must be a string, {} provided'.format(type(name).__name__))
        if not isinstance(value, TypedValue):
            raise TypeError('Parameter "{}" must be a TypedValue, {} provided'.format(name, type(value).__name__))
        self._values[name] = value
        return self

    def get(self, name):
        """ Get the driver value bound to `name`

        :raises KeyError: not bound
        """
        return self._values[name].to_bson()

    def typed(self, name):
        """ Get the TypedValue bound to `name` """
        return self._values[name]

    def names(self):
        return set(self._values)

    def clear(self):
        self._values.clear()

    def copy(self):
        return Bindings(self._values)

    def __contains__(self, name):
        return name in self._values

    def __len__(self):
        return len(self._values)

    def __eq__(self, other):
        return isinstance(other, Bindings) and self._values == other._values

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, dict(self._values))
