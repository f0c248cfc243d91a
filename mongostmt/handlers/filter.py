"""
### Filter Templates
Filter templates compile into the predicate document used by `find()`, `insert()`, `remove()` and `distinct()`.

```javascript
{
    "collection": "UM_USER",
    "UM_USER_NAME": "?",
    "UM_TENANT_ID": "?",
    "projection": { "UM_ID": 1, "UM_USER_PASSWORD": 1 }
}
```

Every scalar leaf is resolved against the bindings by its key, and the result is a *flat* filter:
nested objects are walked, but their resolved leaves land at the top level.

* A bound leaf becomes `key: value`.
* An unbound leaf is dropped: only bound values make it into the filter.
* A bound value equal to the filter operator sentinel (`"*"`) means "any": it is dropped too.
* Children of `projection` are copied into the projection document as they are.
* An array of objects (e.g. `$or`) becomes a list of objects,
  where every key is replaced with its bound value, or kept as a literal.

#### Case-insensitive matching

A `$regex` leaf is matched against the user name field, case-insensitively:

```javascript
{ "collection": "UM_USER", "UM_USER_NAME": { "$regex": "?" } }
```

with `$regex` (or `UM_USER_NAME`) bound to `"^al"`, compiles into:

```javascript
{ "UM_USER_NAME": { "$regex": "^al", "$options": "i" } }
```
"""

import logging
from collections import OrderedDict

from .base import TemplateCompilerBase
from .. import constants as c
from ..command import CompiledCommand, CommandKind
from ..template import ObjectNode, ArrayNode

logger = logging.getLogger(__name__)


class FilterCompiler(TemplateCompilerBase):
    """ Compiles find / insert / remove / distinct templates

        Produces: a filter, and an optional projection
    """

    compiler_name = 'filter'

    def __init__(self, bindings,
                 user_name_field=c.DEFAULT_USER_NAME_FIELD,
                 filter_operator=c.DEFAULT_FILTER_OPERATOR,
                 case_insensitive_option=c.DEFAULT_CASE_INSENSITIVE_OPTION):
        """ Init a filter compiler

        :param bindings: Parameter registry
        :param user_name_field: The field `$regex` leaves are matched against
        :param filter_operator: Sentinel value that drops a condition from the filter
        :param case_insensitive_option: `$options` for case-insensitive regular expressions
        """
        super(FilterCompiler, self).__init__(bindings)

        # Config
        self.user_name_field = user_name_field
        self.filter_operator = filter_operator
        self.case_insensitive_option = case_insensitive_option

        # Compiled
        self.filter = OrderedDict()
        self.projection = OrderedDict()
        self.case_query = OrderedDict()
        #: Was a `$regex` leaf seen?
        self.case_insensitive = False

    def compile_command(self):
        self._compile_object(self.template.body, in_projection=False)

        return CompiledCommand(
            CommandKind.DISTINCT if self.template.distinct_key is not None else CommandKind.FILTER,
            self.template.collection,
            filter=self.compile_filter(),
            projection=self.projection,
            distinct_key=self.template.distinct_key,
        )

    def compile_filter(self):
        """ Put the filter together: the case-insensitive condition goes to the user name field """
        filter = OrderedDict(self.filter)
        if self.case_insensitive and self.case_query:
            filter[self.user_name_field] = OrderedDict(self.case_query)
        return filter

    def _compile_object(self, obj, in_projection):
        """ Walk an object depth-first

        :type obj: ObjectNode
        :param in_projection: Are we inside `projection`?
        """
        for key, node in obj.items():
            try:
                if isinstance(node, ObjectNode):
                    # Objects inside the projection are copied as they are
                    if not in_projection:
                        self._compile_object(node, key == c.PROJECTION_FIELD)
                elif isinstance(node, ArrayNode):
                    self._compile_array(key, node)
                else:
                    key = self._compile_scalar(key, node)
            except Exception:
                # One broken leaf does not break the whole filter
                logger.exception('Error when building the query object at key %r', key)
                continue

            if in_projection:
                self.projection[key] = node.to_python()

    def _compile_array(self, key, array):
        """ An array of objects: `{ $or: [ {..}, {..} ] }`

        :type array: ArrayNode
        """
        sub_queries = []
        for item in array.items:
            if not isinstance(item, ObjectNode):
                continue
            sub_query = OrderedDict()
            for sub_key, sub_node in item.items():
                if self.is_bound(sub_key):
                    self.consume(sub_node)
                sub_query[sub_key] = self.resolve(sub_key, sub_node.to_python())
            sub_queries.append(sub_query)

        if sub_queries:
            self.filter[key] = sub_queries

    def _compile_scalar(self, key, node):
        """ A leaf: resolve it against the bindings

        :type node: ScalarNode
        :return: The key, possibly rewritten
        """
        original_key = key

        # A `$regex` leaf is a case-insensitive match on the user name field
        if key == c.REGEX_FIELD:
            key = self.user_name_field
            self.case_insensitive = True

        # Resolve by the (rewritten) key; `$regex` may also be bound under its own name
        if self.is_bound(key):
            value = self.resolve(key)
        elif self.is_bound(original_key):
            value = self.resolve(original_key)
        else:
            return key  # unbound: dropped
        self.consume(node)

        if value == self.filter_operator:
            return key

        if self.case_insensitive and key == self.user_name_field:
            self.case_query[c.REGEX_FIELD] = value
            self.case_query[c.OPTIONS_FIELD] = self.case_insensitive_option
        else:
            self.filter[key] = value
        return key
