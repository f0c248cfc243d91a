"""
### Query Templates

A query template is a JSON object that describes a MongoDB command.
Values that are only known at execution time are replaced with placeholders: the literal string `"?"`.
The name of a placeholder is the key it sits under:

```javascript
{
    "collection": "UM_USER",  // the collection to query
    "UM_USER_NAME": "?",      // placeholder named "UM_USER_NAME"
    "UM_TENANT_ID": "?"       // placeholder named "UM_TENANT_ID"
}
```

Parameters are bound by name, and nesting is ignored for name resolution:
`{"a": {"b": "?"}}` has one placeholder, named "b".

The kind of the template is inferred from the markers it carries:

* `$set` anywhere in the template: an update
* `$unset` anywhere in the template: an update that removes fields
* `distinct`: a distinct query over the named field
* `$lookup`, `$unwind`, `$match`, `$sort`, `$group`, `$project`, `$limit` at the top level: an aggregation pipeline
* anything else: a filter, used by `find`, `insert` and `remove`
"""

import json
from collections import OrderedDict

from . import constants as c
from .exc import MalformedTemplate


# region Template Nodes

class Node:
    """ A node of the parsed template tree """

    __slots__ = ()

    def to_python(self):
        """ Convert the node back into plain Python values (dict, list, scalars) """
        raise NotImplementedError()

    def __eq__(self, other):
        return type(self) is type(other) and all(getattr(self, a) == getattr(other, a)
                                                 for a in self.__slots__)


class ObjectNode(Node):
    """ A JSON object: an ordered mapping of keys to nodes """

    __slots__ = ('entries',)

    def __init__(self, entries):
        #: OrderedDict[str, Node]
        self.entries = entries

    def __repr__(self):
        return 'ObjectNode({!r})'.format(dict(self.entries))

    def __contains__(self, key):
        return key in self.entries

    def get(self, key, default=None):
        return self.entries.get(key, default)

    def items(self):
        return self.entries.items()

    def without(self, *keys):
        """ Get a copy of this object with some keys removed """
        return ObjectNode(OrderedDict((k, v)
                                      for k, v in self.entries.items()
                                      if k not in keys))

    def to_python(self):
        return OrderedDict((k, v.to_python())
                           for k, v in self.entries.items())


class ArrayNode(Node):
    """ A JSON array """

    __slots__ = ('items',)

    def __init__(self, items):
        #: list[Node]
        self.items = items

    def __repr__(self):
        return 'ArrayNode({!r})'.format(self.items)

    def to_python(self):
        return [v.to_python() for v in self.items]


class ScalarNode(Node):
    """ A JSON primitive: string, number, boolean, null """

    __slots__ = ('value',)

    def __init__(self, value):
        self.value = value

    def __repr__(self):
        return 'ScalarNode({!r})'.format(self.value)

    def to_python(self):
        return self.value


class Placeholder(ScalarNode):
    """ A `"?"` leaf: a value that has to be bound by name

        Placeholders only exist as values of JSON objects: a `"?"` inside an array has no name,
        and remains a literal.
    """

    __slots__ = ('name', 'parent')

    def __init__(self, name, parent=None):
        super(Placeholder, self).__init__(c.PLACEHOLDER)
        #: The key the placeholder sits under
        self.name = name
        #: The key of the object that contains the placeholder (None at the top level)
        self.parent = parent

    def __repr__(self):
        return 'Placeholder({!r}, parent={!r})'.format(self.name, self.parent)

# endregion


# region Parsing

def parse_template(text):
    """ Parse a JSON template into a tree of nodes

    :param text: JSON template
    :type text: str
    :rtype: ObjectNode
    :raises MalformedTemplate: null, invalid JSON, or not a JSON object
    """
    if text is None:
        raise MalformedTemplate('cannot init null query')
    if not isinstance(text, str):
        raise MalformedTemplate('expected a JSON string, {} provided'.format(type(text).__name__))

    try:
        value = json.loads(text, object_pairs_hook=OrderedDict)
    except ValueError as e:
        raise MalformedTemplate(str(e)) from e

    if not isinstance(value, dict):
        raise MalformedTemplate('the template must be a JSON object')

    return _to_node(value, None, None)


def _to_node(value, key, parent):
    """ Convert a decoded JSON value into a node

    :param key: The key this value sits under (None for array items and the root)
    :param parent: The key of the object that contains `key`
    """
    if isinstance(value, dict):
        return ObjectNode(OrderedDict((k, _to_node(v, k, key))
                                      for k, v in value.items()))
    elif isinstance(value, list):
        return ArrayNode([_to_node(v, None, key) for v in value])
    elif value == c.PLACEHOLDER and key is not None:
        return Placeholder(key, parent)
    else:
        return ScalarNode(value)

# endregion


# region Placeholder Matching

def iter_placeholders(node):
    """ Walk the tree and yield every placeholder, depth-first

    :type node: Node
    :rtype: Iterator[Placeholder]
    """
    if isinstance(node, Placeholder):
        yield node
    elif isinstance(node, ObjectNode):
        for child in node.entries.values():
            yield from iter_placeholders(child)
    elif isinstance(node, ArrayNode):
        for child in node.items:
            yield from iter_placeholders(child)


def count_placeholders(node):
    """ Count the placeholders in the tree """
    return sum(1 for _ in iter_placeholders(node))


def match_arguments(template, bindings):
    """ Do the bindings fit the template? As many bindings as placeholders.

    :type template: Template
    :type bindings: mongostmt.bindings.Bindings
    :rtype: bool
    """
    return len(bindings) == template.placeholder_count

# endregion


class TemplateKind:
    """ The kinds of templates, as inferred from their markers """
    FILTER = 'filter'
    UPDATE = 'update'
    UNSET = 'unset'
    DISTINCT = 'distinct'
    AGGREGATE = 'aggregate'


def is_lookup_key(key):
    """ Test whether a template key holds a `$lookup` stage: `$lookup`, `$lookup_sub`, ... """
    return c.LOOKUP_FIELD in key


def is_unwind_key(key):
    """ Test whether a template key holds an `$unwind` stage: `$unwind`, `$unwind_sub`, ... """
    return c.UNWIND_FIELD in key


#: Top-level keys that make a template an aggregation
AGGREGATION_STAGE_KEYS = frozenset((c.LIMIT_FIELD, c.MATCH_FIELD, c.SORT_FIELD, c.GROUP_FIELD, c.PROJECT_FIELD))


class Template:
    """ A parsed query template

        The template is immutable: compilers never modify its tree.
    """

    def __init__(self, text):
        """ Parse the template

        :param text: JSON template
        :type text: str
        :raises MalformedTemplate
        """
        #: The original JSON text
        self.text = text
        #: The parsed tree
        self.tree = parse_template(text)

        #: Name of the collection, or None
        self.collection = self._get_string_attribute(c.COLLECTION_FIELD)
        #: Name of the field to distinct over, or None
        self.distinct_key = self._get_string_attribute(c.DISTINCT_FIELD)

        #: Does the template mention `$lookup`?
        # NOTE: this flag selects the *single* lookup mode: see AggregateCompiler
        self.multi_lookup = c.LOOKUP_FIELD in text

        #: Number of placeholders
        self.placeholder_count = count_placeholders(self.tree)

    def __repr__(self):
        return '{}({})'.format(self.__class__.__name__, self.text)

    def _get_string_attribute(self, name):
        node = self.tree.get(name)
        if node is None or isinstance(node, Placeholder):
            return None
        if not isinstance(node, ScalarNode) or not isinstance(node.value, str):
            raise MalformedTemplate('"{}" must be a string'.format(name))
        return node.value

    @property
    def body(self):
        """ The tree without the `collection` and `distinct` attributes """
        return self.tree.without(c.COLLECTION_FIELD, c.DISTINCT_FIELD)

    @property
    def is_update(self):
        return c.SET_FIELD in self.text

    @property
    def is_unset(self):
        return not self.is_update and c.UNSET_FIELD in self.text

    @property
    def is_aggregation(self):
        return any(k in AGGREGATION_STAGE_KEYS or is_lookup_key(k) or is_unwind_key(k)
                   for k in self.tree.entries)

    @property
    def kind(self):
        """ Infer the kind of the template

        :rtype: str
        """
        if self.is_update:
            return TemplateKind.UPDATE
        elif self.is_unset:
            return TemplateKind.UNSET
        elif self.is_aggregation:
            return TemplateKind.AGGREGATE
        elif self.distinct_key is not None:
            return TemplateKind.DISTINCT
        else:
            return TemplateKind.FILTER

    def placeholders(self):
        """ List every placeholder

        :rtype: list[Placeholder]
        """
        return list(iter_placeholders(self.tree))
