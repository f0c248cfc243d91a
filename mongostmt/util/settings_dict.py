from typing import Optional

from .inspect import pluck_kwargs_from
from .. import constants as c


class StatementSettingsDict(dict):
    """ PreparedStatement settings container.

        Is only used for nice autocompletion and documentation purposes only! :)

        The keyword settings in this object are just plain kwargs names
        for every compiler object's __init__ method,
        which are fed to subclasses of TemplateCompilerBase by StatementSettingsHandler.

        In addition to that, there are '<compiler-name>_enabled' settings,
        that can enable or disable a compiler.
    """

    def __init__(self,
                 # --- statement
                 strict: bool = True,
                 update_upsert: bool = False,
                 # --- aggregate
                 multi_lookup: Optional[bool] = None,
                 dependency_field: str = c.DEFAULT_DEPENDENCY_FIELD,
                 # --- filter & aggregate
                 user_name_field: str = c.DEFAULT_USER_NAME_FIELD,
                 filter_operator: str = c.DEFAULT_FILTER_OPERATOR,
                 case_insensitive_option: str = c.DEFAULT_CASE_INSENSITIVE_OPTION,
                 # --- enabled compilers?
                 filter_enabled: bool = True,
                 update_enabled: bool = True,
                 unset_enabled: bool = True,
                 aggregate_enabled: bool = True,
                 ):
        """ `PreparedStatement` settings that tune the way templates are compiled.

        Example:
            ```python
            from mongostmt import PreparedStatement, StatementSettingsDict

            settings = StatementSettingsDict(
                # silently drop placeholders that have no binding
                strict=False,
                # the field that case-insensitive `$regex` lookups apply to
                user_name_field='login',
            )
            stmt = PreparedStatement(db, '{"collection": "users", "login": {"$regex": "?"}}', settings)
            ```

        Args:
            strict (bool): (for: statement)
                When `True`, a placeholder that no binding resolves raises `UnboundPlaceholder`.
                When `False`, such placeholders are silently dropped from the compiled command:
                the legacy behavior, which callers should not rely on.
            update_upsert (bool): (for: statement)
                Pass `upsert=True` to `update_one()` when executing update templates.
            multi_lookup (bool | None): (for: aggregate)
                Override the lookup mode. `None` detects it from the template: any template that mentions `$lookup`
                uses the single mode.
                Note the inverted naming: `True` keeps only the last `$lookup` and `$unwind` stages,
                `False` interleaves all of them by their dependencies.
            dependency_field (str): (for: aggregate)
                The `$lookup` attribute that marks a lookup depending on an earlier unwind.
            user_name_field (str): (for: filter, aggregate)
                The field that `$regex` placeholders are matched against, case-insensitively.
            filter_operator (str): (for: filter, aggregate)
                A bound value equal to this sentinel means "any": the condition is left out of the filter.
            case_insensitive_option (str): (for: filter, aggregate)
                The `$options` value used for case-insensitive regular expressions.

            filter_enabled (bool): Enable/disable the `filter` compiler
            update_enabled (bool): Enable/disable the `update` compiler
            unset_enabled (bool): Enable/disable the `unset` compiler
            aggregate_enabled (bool): Enable/disable the `aggregate` compiler
        """
        super(StatementSettingsDict, self).__init__()
        self.update({k: v
                     for k, v in locals().items()
                     if k not in {'__class__', 'self'}})
        # locals() collects every argument: there's no list of names to keep in sync

    def and_more(self, **settings):
        """ Copy the object and add more settings to it """
        return self.__class__(**{**self, **settings})

    @classmethod
    def pluck_from(cls, dict, skip=()):
        """ Initialize the class by plucking kwargs from a dictionary.

            This is useful when you have a dict with configuration for multiple classes,
            and you want to initialize this one by getting only the keys you need.
        """
        kwargs = pluck_kwargs_from(dict,
                                   for_func=cls.__init__,
                                   skip=skip
                                   )
        return cls(**kwargs)
