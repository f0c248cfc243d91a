"""
MongoStmt is a prepared statement layer for [MongoDB](https://www.mongodb.com/),
with query templates written in JSON.

A template is a JSON object that looks like the command it compiles into,
with `"?"` placeholders where the values go:

```python
stmt = PreparedStatement(db, '''{
    "collection": "UM_USER",
    "UM_ID": "?",
    "projection": { "$set": { "UM_USER_PASSWORD": "?" } }
}''')
stmt.bind_long('UM_ID', 7)
stmt.bind_string('UM_USER_PASSWORD', password_hash)
stmt.update()  # -> db.UM_USER.update_one({UM_ID: 7}, {$set: {UM_USER_PASSWORD: ...}})
```

Placeholders are bound by name: the key they sit under.
The same statement runs finds, inserts, updates, removals, distinct queries,
unordered bulk writes, and aggregation pipelines.

Templates are kept as strings in your configuration,
and your code never has to assemble MongoDB commands by hand.
"""

# Exceptions that are used here and there
from .exc import *

# Templates, and the typed values bound to their placeholders
from .template import Template, TemplateKind, match_arguments
from .bindings import Bindings, TypedValue, Int32, Int64, Str, Bool, Date

# The heart of MongoStmt are the compilers:
# that's where your JSON templates are converted to actual MongoDB commands!
from . import handlers
from .command import CompiledCommand, CommandKind
from .compiler import StatementCompiler, compile_template

# PreparedStatement binds parameters, compiles, and runs the commands with pymongo
from .statement import PreparedStatement, StatementState

# Settings objects for PreparedStatement
from .util import StatementSettingsDict
