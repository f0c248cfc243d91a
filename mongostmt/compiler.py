import logging
from collections import OrderedDict

from .bindings import Bindings
from .exc import ParameterCountMismatch, NoCollection, UnboundPlaceholder
from .handlers import FilterCompiler, UpdateCompiler, UnsetCompiler, AggregateCompiler
from .template import Template, TemplateKind, match_arguments
from .util import StatementSettingsHandler

logger = logging.getLogger(__name__)


class StatementCompiler:
    """ Compiles templates with their bindings into commands

        The compiler keeps no state between compilations:
        the same template and bindings always give equal commands.
    """

    #: Compiler classes, by name
    COMPILERS = OrderedDict((
        ('filter', FilterCompiler),
        ('update', UpdateCompiler),
        ('unset', UnsetCompiler),
        ('aggregate', AggregateCompiler),
    ))

    def __init__(self, settings=None):
        """ Init the compiler

        :param settings: Settings for the compilers. See StatementSettingsDict.
        :type settings: dict | mongostmt.StatementSettingsDict | None
        :raises KeyError: unknown settings
        """
        self._settings = StatementSettingsHandler(dict(settings or {}))

        #: kwargs for every compiler's __init__
        self._compiler_settings = {name: self._settings.get_settings(name, cls)
                                   for name, cls in self.COMPILERS.items()}
        self._settings.raise_if_invalid_settings()

        #: Raise on placeholders that no binding resolves?
        self.strict = self._settings.get('strict', True)
        #: Lookup mode override; None to detect from the template
        self.multi_lookup = self._settings.get('multi_lookup', None)

    def check_placeholders(self, template, bindings):
        """ Check that the bindings fit the template

        :type template: Template
        :type bindings: Bindings
        :raises ParameterCountMismatch: placeholder count != binding count
        """
        if not match_arguments(template, bindings):
            raise ParameterCountMismatch(template.placeholder_count, len(bindings))

    def check_resolved(self, compiler):
        """ (strict mode) Check that the compiler resolved every placeholder

        Only the compiler knows where it looks for bindings:
        e.g. an update only looks at the top-level keys and the `$set` / `$unset` object.

        :type compiler: mongostmt.handlers.TemplateCompilerBase
        :raises UnboundPlaceholder: a placeholder that the compiler could not resolve
        """
        if not self.strict:
            return

        unresolved = compiler.unresolved_placeholders()
        if unresolved:
            raise UnboundPlaceholder(unresolved[0].name, unresolved[0].parent)

    def compiler_for(self, name, bindings, multi_lookup=None):
        """ Make a compiler object

        :param name: Compiler name
        :param bindings: Bindings to resolve placeholders with
        :param multi_lookup: Lookup mode override (aggregate only)
        :rtype: mongostmt.handlers.TemplateCompilerBase
        :raises DisabledError
        """
        self._settings.raise_if_not_compiler_enabled(name)

        kwargs = dict(self._compiler_settings[name])
        if name == 'aggregate':
            if multi_lookup is None:
                multi_lookup = self.multi_lookup
            kwargs['multi_lookup'] = multi_lookup
        return self.COMPILERS[name](bindings, **kwargs)

    def compile_query(self, template, bindings):
        """ Compile a find / insert / update / unset / remove / distinct template

        The compiler is chosen by the template text: `$set` -> update, `$unset` -> unset, otherwise a filter.

        :type template: Template
        :type bindings: Bindings
        :rtype: mongostmt.command.CompiledCommand
        :raises ParameterCountMismatch
        :raises UnboundPlaceholder
        :raises NoCollection
        """
        self.check_placeholders(template, bindings)
        self._raise_if_no_collection(template)

        if template.is_update:
            name = 'update'
        elif template.is_unset:
            name = 'unset'
        else:
            name = 'filter'

        compiler = self.compiler_for(name, bindings).input(template)
        command = compiler.compile_command()
        self.check_resolved(compiler)
        logger.debug('Compiled %s template %s: %r', name, template.text, command)
        return command

    def compile_pipeline(self, template, bindings, multi_lookup=None):
        """ Compile an aggregation template

        :type template: Template
        :type bindings: Bindings
        :param multi_lookup: Lookup mode override
        :rtype: mongostmt.command.CompiledCommand
        :raises ParameterCountMismatch
        :raises UnboundPlaceholder
        :raises NoCollection
        """
        self.check_placeholders(template, bindings)
        self._raise_if_no_collection(template)

        compiler = self.compiler_for('aggregate', bindings, multi_lookup).input(template)
        command = compiler.compile_command()
        self.check_resolved(compiler)
        logger.debug('Compiled aggregation template %s: %r', template.text, command)
        return command

    def compile(self, template, bindings, multi_lookup=None):
        """ Compile any template: aggregation templates into a pipeline, the rest into a query """
        if template.kind == TemplateKind.AGGREGATE:
            return self.compile_pipeline(template, bindings, multi_lookup)
        return self.compile_query(template, bindings)

    def _raise_if_no_collection(self, template):
        if template.collection is None:
            logger.debug('Using query: %s', template.text)
            raise NoCollection(template.text)


def compile_template(template, bindings, settings=None, multi_lookup=None):
    """ Compile a template with its bindings

    A pure function: the same inputs give equal commands.

    :param template: JSON template, or a parsed Template
    :type template: str | Template
    :param bindings: Bindings, or a dict of name -> TypedValue
    :type bindings: Bindings | dict
    :param settings: See StatementSettingsDict
    :param multi_lookup: Lookup mode override
    :rtype: mongostmt.command.CompiledCommand
    """
    if not isinstance(template, Template):
        template = Template(template)
    if not isinstance(bindings, Bindings):
        bindings = Bindings(bindings)
    return StatementCompiler(settings).compile(template, bindings, multi_lookup)
