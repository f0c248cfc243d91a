from .inspect import pluck_kwargs_from
from ..exc import DisabledError


class StatementSettingsHandler:
    """ Settings keeper for PreparedStatement

        This is essentially a helper which will feed the correct kwargs to every compiler.

        Template compilers receive settings as kwargs to their __init__() methods,
        and those kwargs have unique names.

        This class will collect all settings as a single, flat dict,
        and give each compiler only the settings it wants.
        Compilers that share a setting (e.g. `user_name_field`) all receive it.
    """

    #: Settings consumed by the statement itself, not by any compiler
    STATEMENT_SETTINGS = frozenset(('strict', 'update_upsert', 'multi_lookup'))

    def __init__(self, settings: dict):
        """ Store the settings for every compiler

            :param settings: dict of compiler kwargs
        """
        assert isinstance(settings, dict)

        #: Settings dict
        self._settings = settings  # not copied: never modified

        #: Compiler names
        self._compiler_names = set()

        #: all kwargs names (to identify invalid ones)
        self._all_known_kwargs_names = set()

        #: disabled compiler names
        self._disabled_compilers = set()

    def get(self, name: str, default=None):
        """ Get a statement-level setting """
        return self._settings.get(name, default)

    def get_settings(self, compiler_name: str, compiler_cls: type) -> dict:
        """ Get settings for the given compiler

            The compiler's __init__() is analyzed for kwargs and their default values;
            the matching keys are taken from the settings dict, the rest from the defaults.

            If the settings contain `<compiler_name>_enabled=False`, the compiler is disabled.
        """
        if not self._settings.get('{}_enabled'.format(compiler_name), True):
            self._disabled_compilers.add(compiler_name)

        kwargs = pluck_kwargs_from(self._settings, for_func=compiler_cls.__init__)

        self._compiler_names.add(compiler_name)
        self._all_known_kwargs_names.update(kwargs.keys())
        return kwargs

    def is_compiler_enabled(self, compiler_name: str) -> bool:
        """ Test if the compiler is enabled in the configuration """
        return compiler_name not in self._disabled_compilers

    def raise_if_not_compiler_enabled(self, compiler_name: str):
        """ Raise an error if the compiler is not enabled """
        if not self.is_compiler_enabled(compiler_name):
            raise DisabledError('Template compiler "{}" is disabled'.format(compiler_name))

    def raise_if_invalid_settings(self):
        """ Check whether there were any typos in setting names

            Call it after every compiler got its settings.

            :raises: KeyError: Invalid settings provided
        """
        known_keys = set('{}_enabled'.format(name) for name in self._compiler_names)
        known_keys |= self._all_known_kwargs_names
        known_keys |= self.STATEMENT_SETTINGS

        invalid_keys = set(self._settings.keys()) - known_keys
        if invalid_keys:
            raise KeyError('Invalid settings were provided for PreparedStatement: {}'
                           .format(','.join(sorted(invalid_keys))))

    def __repr__(self):
        return repr('{}({})'.format(self.__class__.__name__, self._settings))
