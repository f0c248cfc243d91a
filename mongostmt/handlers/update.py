"""
### Update Templates

An update template names the documents to update with its top-level keys,
and the fields to write with a `$set` object, usually put under `projection`:

```javascript
{
    "collection": "UM_USER",
    "UM_ID": "?",
    "projection": { "$set": { "UM_USER_PASSWORD": "?", "UM_CHANGED_TIME": "?" } }
}
```

This compiles into `update_one({UM_ID: ...}, {$set: {UM_USER_PASSWORD: ..., UM_CHANGED_TIME: ...}})`.
Only bound keys are written.

An `$unset` object removes fields instead. Its values are copied as they are, unless bound:

```javascript
{
    "collection": "UM_USER",
    "UM_ID": "?",
    "projection": { "$unset": { "UM_TMP_TOKEN": 1 } }
}
```

Only the top-level keys of the template make the filter: nested objects other than `$set` / `$unset` are ignored,
and placeholders inside them are never resolved.
"""

from collections import OrderedDict

from .base import TemplateCompilerBase
from .. import constants as c
from ..command import CompiledCommand, CommandKind
from ..template import ObjectNode, Placeholder


class UpdateCompiler(TemplateCompilerBase):
    """ Compiles `$set` templates

        Produces: a filter, and a `$set` document
    """

    compiler_name = 'update'

    #: The update operator this compiler looks for
    update_operator = c.SET_FIELD
    #: The kind of commands this compiler produces
    command_kind = CommandKind.UPDATE

    def __init__(self, bindings):
        super(UpdateCompiler, self).__init__(bindings)

        # Compiled
        self.filter = OrderedDict()
        self.update = OrderedDict()

    def compile_command(self):
        for key, node in self.template.body.items():
            if key == c.PROJECTION_FIELD and isinstance(node, ObjectNode):
                # { projection: { $set: {...} } }
                self._compile_update_object(node.get(self.update_operator))
            elif key == self.update_operator:
                # { $set: {...} }
                self._compile_update_object(node)
            elif self.is_bound(key):
                if isinstance(node, Placeholder):
                    self.consume(node)
                self.filter[key] = self.resolve(key)

        return CompiledCommand(
            self.command_kind,
            self.template.collection,
            filter=self.filter,
            update=self.update,
        )

    def _compile_update_object(self, node):
        """ Collect the fields of the update operator's object

        :type node: ObjectNode | None
        """
        if not isinstance(node, ObjectNode):
            return

        for key, value in node.items():
            if self.is_bound(key):
                if isinstance(value, Placeholder):
                    self.consume(value)
                self.update[key] = self.resolve(key)


class UnsetCompiler(UpdateCompiler):
    """ Compiles `$unset` templates

        Produces: a filter, and an `$unset` document copied from the template
    """

    compiler_name = 'unset'
    update_operator = c.UNSET_FIELD
    command_kind = CommandKind.UNSET

    def _compile_update_object(self, node):
        if not isinstance(node, ObjectNode):
            return

        for key, value in node.items():
            if self.is_bound(key) and isinstance(value, Placeholder):
                self.consume(value)
            self.update[key] = self.resolve(key, value.to_python())
