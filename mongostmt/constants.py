""" Names of the template attributes and MongoDB operators the compilers react to """

#: The placeholder value
PLACEHOLDER = '?'

# Template attributes
COLLECTION_FIELD = 'collection'
DISTINCT_FIELD = 'distinct'
PROJECTION_FIELD = 'projection'

# Update operators
SET_FIELD = '$set'
UNSET_FIELD = '$unset'

# Filter operators
REGEX_FIELD = '$regex'
OPTIONS_FIELD = '$options'

# Aggregation stages
LIMIT_FIELD = '$limit'
LOOKUP_FIELD = '$lookup'
UNWIND_FIELD = '$unwind'
MATCH_FIELD = '$match'
SORT_FIELD = '$sort'
GROUP_FIELD = '$group'
PROJECT_FIELD = '$project'

#: `$lookup` attribute that names the output array field
LOOKUP_AS_FIELD = 'as'

# Defaults for the settings (see StatementSettingsDict)
DEFAULT_USER_NAME_FIELD = 'UM_USER_NAME'
DEFAULT_FILTER_OPERATOR = '*'
DEFAULT_CASE_INSENSITIVE_OPTION = 'i'
DEFAULT_DEPENDENCY_FIELD = 'dependency'
