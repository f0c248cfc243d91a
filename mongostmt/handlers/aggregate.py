"""
### Aggregation Templates

An aggregation template lists pipeline stages as top-level keys:

```javascript
{
    "collection": "UM_USER",
    "$match": { "UM_TENANT_ID": "?", "UM_USER_NAME": { "$regex": "?", "$options": "i" } },
    "$lookup": { "from": "UM_USER_ATTRIBUTE", "localField": "UM_ID", "foreignField": "UM_USER_ID", "as": "attrs" },
    "$unwind": { "path": "$attrs" },
    "$sort": { "UM_USER_NAME": 1 },
    "$project": { "UM_USER_NAME": 1, "attrs": 1 },
    "$limit": "?"
}
```

Whatever the order of the keys in the template, the stages are emitted in this order:

1. `$limit`
2. `$lookup` (with the unwinds that follow each lookup, see [Lookups and Unwinds](#lookups-and-unwinds))
3. `$unwind` (only in single lookup mode)
4. `$match`
5. `$sort`
6. `$group`
7. `$project`

Empty stages are left out.

The `$lookup`, `$unwind`, `$sort`, `$group`, `$project` bodies are copied as they are.
Any other key is a `$match` body: its leaves are resolved against the bindings by their keys.
A bound key whose template value is an object (`{"$regex": "?"}`) is a case-insensitive regular expression
matched against the user name field.

`$limit` is either a number, or a placeholder bound to an integer.
"""

import logging
from collections import OrderedDict

from .base import TemplateCompilerBase
from .lookup import interleave_lookups, lookup_stage, unwind_stage
from .. import constants as c
from ..command import CompiledCommand, CommandKind
from ..exc import QueryError
from ..template import ObjectNode, ScalarNode, Placeholder, is_lookup_key, is_unwind_key

logger = logging.getLogger(__name__)


class AggregateCompiler(TemplateCompilerBase):
    """ Compiles aggregation templates into a pipeline """

    compiler_name = 'aggregate'

    #: Stages whose bodies are copied from the template as they are
    _VERBATIM_STAGES = (c.SORT_FIELD, c.GROUP_FIELD, c.PROJECT_FIELD)

    def __init__(self, bindings,
                 multi_lookup=None,
                 dependency_field=c.DEFAULT_DEPENDENCY_FIELD,
                 user_name_field=c.DEFAULT_USER_NAME_FIELD,
                 filter_operator=c.DEFAULT_FILTER_OPERATOR,
                 case_insensitive_option=c.DEFAULT_CASE_INSENSITIVE_OPTION):
        """ Init an aggregation compiler

        :param bindings: Parameter registry
        :param multi_lookup: Lookup mode. None: detect from the template.
            True: keep only the last `$lookup` and `$unwind` (the single mode).
            False: interleave all lookups and unwinds by their dependencies.
        :param dependency_field: Name of the `$lookup` dependency marker
        :param user_name_field: The field case-insensitive matches apply to
        :param filter_operator: Sentinel value that drops a condition from `$match`
        :param case_insensitive_option: `$options` for case-insensitive regular expressions
        """
        super(AggregateCompiler, self).__init__(bindings)

        # Config
        self.multi_lookup = multi_lookup
        self.dependency_field = dependency_field
        self.user_name_field = user_name_field
        self.filter_operator = filter_operator
        self.case_insensitive_option = case_insensitive_option

        # Stages
        self.limit = None
        self.lookups = []
        self.unwinds = []
        self.match = OrderedDict()
        self.match_case_insensitive = OrderedDict()
        self.case_insensitive = False
        self.stages = {}  # $sort, $group, $project

    @property
    def is_single_lookup(self):
        """ Single lookup mode: the flag, or the template's own """
        if self.multi_lookup is not None:
            return self.multi_lookup
        return self.template.multi_lookup

    def compile_command(self):
        for key, node in self.template.tree.items():
            if key in (c.COLLECTION_FIELD, c.DISTINCT_FIELD):
                continue
            elif key == c.LIMIT_FIELD:
                self.limit = self._compile_limit(node)
            elif is_lookup_key(key):
                self.lookups.append(self._stage_body(key, node))
            elif is_unwind_key(key):
                self.unwinds.append(self._stage_body(key, node))
            elif key in self._VERBATIM_STAGES:
                self.stages[key] = self._stage_body(key, node)
            else:
                self._compile_match(key, node)

        pipeline = self.compile_pipeline()
        logger.debug('Compiled pipeline (single lookup mode: %s): %r', self.is_single_lookup, pipeline)

        return CompiledCommand(
            CommandKind.AGGREGATE,
            self.template.collection,
            pipeline=pipeline,
        )

    def compile_pipeline(self):
        """ Put the stages together, in order

        :rtype: list[dict]
        """
        pipeline = []

        if self.limit is not None:
            pipeline.append({c.LIMIT_FIELD: self.limit})

        if self.is_single_lookup:
            if self.lookups:
                pipeline.append(lookup_stage(self.lookups[-1], self.dependency_field))
            if self.unwinds:
                pipeline.append(unwind_stage(self.unwinds[-1]))
        else:
            interleave_lookups(pipeline, self.lookups, self.unwinds, self.dependency_field)

        match = OrderedDict(self.match)
        if self.case_insensitive and self.match_case_insensitive:
            match[self.user_name_field] = OrderedDict(self.match_case_insensitive)
        if match:
            pipeline.append({c.MATCH_FIELD: match})

        for stage_name in self._VERBATIM_STAGES:
            body = self.stages.get(stage_name)
            if body:
                pipeline.append({stage_name: body})

        return pipeline

    def _stage_body(self, key, node):
        if not isinstance(node, ObjectNode):
            raise QueryError('Aggregation stage "{}" must be an object'.format(key))
        return node.to_python()

    def _compile_limit(self, node):
        """ `$limit`: a positive number, or a placeholder bound to one """
        if isinstance(node, ScalarNode) and not isinstance(node, Placeholder):
            value = node.value
        else:
            if not self.is_bound(c.LIMIT_FIELD):
                return None
            self.consume(node)
            value = self.resolve(c.LIMIT_FIELD)

        if isinstance(value, bool):
            raise QueryError('Invalid $limit: {!r}'.format(value))
        try:
            limit = int(str(value))
        except ValueError:
            raise QueryError('Invalid $limit: {!r}'.format(value))

        if limit < 1:
            raise QueryError('Invalid $limit: must be positive, {} provided'.format(limit))
        return limit

    def _compile_match(self, key, node):
        """ A `$match` body: `{ $match: {...} }`, or any other key

        :param key: Template key
        :param node: An object with match entries, or a single scalar entry
        """
        if isinstance(node, ObjectNode):
            entries = node.items()
        else:
            entries = ((key, node),)

        for name, value in entries:
            resolved_name = self._resolve_match_name(name, value)
            if resolved_name is None:
                continue

            self.consume(value)
            val = self.resolve(resolved_name)
            if val == self.filter_operator:
                continue

            if isinstance(value, ObjectNode):
                # { UM_USER_NAME: { $regex: "?", $options: "i" } }
                for element in value.entries:
                    if element == c.REGEX_FIELD:
                        self.match_case_insensitive[element] = val
                    else:
                        self.match_case_insensitive[element] = self.case_insensitive_option
                self.match_case_insensitive.setdefault(c.OPTIONS_FIELD, self.case_insensitive_option)
                self.case_insensitive = True
            else:
                self.match[name] = val

    def _resolve_match_name(self, name, value):
        """ Get the binding name for a match entry, or None when it's unbound

        Entries are bound by their own key.
        A `$regex` object may also be bound under `$regex`.
        """
        if self.is_bound(name):
            return name
        if isinstance(value, ObjectNode) and c.REGEX_FIELD in value and self.is_bound(c.REGEX_FIELD):
            return c.REGEX_FIELD
        return None
