"""
A query template is compiled by one of the compilers, chosen by the markers the template carries:

* [Filter Templates](#filter-templates): `find()`, `insert()`, `remove()`, `distinct()`, and batches
* [Update Templates](#update-templates): `update()` with `$set` or `$unset`
* [Aggregation Templates](#aggregation-templates): `aggregate()`

Every compiler walks the template, resolves its placeholders against the bindings,
and produces a `CompiledCommand`: a driver-ready structure that PreparedStatement hands over to pymongo.
Compilers are single-use: make a new one for every compilation.
"""

from .base import TemplateCompilerBase
from .filter import FilterCompiler
from .update import UpdateCompiler, UnsetCompiler
from .aggregate import AggregateCompiler
from .lookup import interleave_lookups
