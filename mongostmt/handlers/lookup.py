"""
### Lookups and Unwinds

An aggregation template may carry several `$lookup` stages.
JSON objects can't repeat keys, so every extra lookup goes under a key that contains `$lookup`
(`$lookup_sub`, `$lookup2`, ...), and every extra unwind under a key that contains `$unwind`.

```javascript
{
    "collection": "UM_USER",
    "$lookup": { "from": "UM_USER_ROLE", "localField": "UM_ID", "foreignField": "UM_USER_ID", "as": "userRole" },
    "$unwind": { "path": "$userRole" },
    "$lookup_sub": { "from": "UM_ROLE", "localField": "userRole.UM_ROLE_ID", "foreignField": "UM_ID",
                     "as": "role", "dependency": "userRole" },
    "$unwind_sub": { "path": "$role" }
}
```

Every lookup is followed by the unwinds that reference it by its `as` alias.
A lookup that carries the `dependency` marker waits for the lookup it names (by its `as` alias),
and goes after its own unwinds instead.
The marker is removed from the emitted stage.
"""

from collections import OrderedDict

from .. import constants as c


def unwinds_for(lookup, unwinds):
    """ Find the unwind bodies that reference the lookup's `as` alias

    :type lookup: dict
    :type unwinds: list[dict]
    :rtype: list[dict]
    """
    alias = '$' + str(lookup.get(c.LOOKUP_AS_FIELD))
    return [unwind for unwind in unwinds
            if alias in unwind.values()]


def lookup_stage(body, dependency_field):
    """ Make a `$lookup` stage, without the dependency marker """
    return {c.LOOKUP_FIELD: OrderedDict((k, v)
                                        for k, v in body.items()
                                        if k != dependency_field)}


def unwind_stage(body):
    """ Make an `$unwind` stage """
    return {c.UNWIND_FIELD: OrderedDict(body)}


def interleave_lookups(pipeline, lookups, unwinds, dependency_field):
    """ Append `$lookup` and `$unwind` stages to the pipeline, ordered by their dependencies

    The lookups are scanned in passes:

    * A plain lookup is appended, followed by every unwind that references its `as` alias.
    * A dependent lookup waits until the lookup named by its marker is appended.
      Then, the unwinds that reference it are appended first, and the lookup goes last.
    * A dependent lookup whose marker names no known lookup is a plain lookup.

    Passes repeat while they make progress.
    Lookups that still wait after that (circular dependencies) are appended as plain lookups, in template order.
    Unwinds that reference no lookup are not emitted.

    :param pipeline: The pipeline to append to; modified in place
    :type pipeline: list[dict]
    :param lookups: `$lookup` bodies, in template order. Not modified.
    :type lookups: list[dict]
    :param unwinds: `$unwind` bodies, in template order
    :type unwinds: list[dict]
    :param dependency_field: Name of the dependency marker
    :rtype: list[dict]
    """
    aliases = [lookup.get(c.LOOKUP_AS_FIELD) for lookup in lookups]
    appended_aliases = []
    emitted = [False] * len(lookups)

    def append_plain(i, lookup):
        pipeline.append(lookup_stage(lookup, dependency_field))
        pipeline.extend(unwind_stage(u) for u in unwinds_for(lookup, unwinds))
        appended_aliases.append(lookup.get(c.LOOKUP_AS_FIELD))
        emitted[i] = True

    progress = True
    while progress and not all(emitted):
        progress = False
        for i, lookup in enumerate(lookups):
            if emitted[i]:
                continue

            parent = lookup.get(dependency_field)
            if dependency_field not in lookup or parent not in aliases:
                append_plain(i, lookup)
            elif parent in appended_aliases:
                # The lookup goes after the unwind that flattens its own results
                pipeline.extend(unwind_stage(u) for u in unwinds_for(lookup, unwinds))
                pipeline.append(lookup_stage(lookup, dependency_field))
                appended_aliases.append(lookup.get(c.LOOKUP_AS_FIELD))
                emitted[i] = True
            else:
                # Wait for the parent
                continue
            progress = True

    # Circular dependencies
    for i, lookup in enumerate(lookups):
        if not emitted[i]:
            append_plain(i, lookup)

    return pipeline
