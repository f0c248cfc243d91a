from ..bindings import Bindings
from ..template import Template, iter_placeholders


class TemplateCompilerBase:
    """ An implementation of a template compiler

        Every subclass compiles a single kind of template into a CompiledCommand
    """

    #: Name of the template kind this compiler handles; also the name of its `<name>_enabled` setting
    compiler_name = None

    def __init__(self, bindings):
        """ Initialize the compiler with the bindings to resolve placeholders with.

        This method does *not* receive any template just yet, with the purpose of having an
        object that can be configured at init time and given input later.

        :param bindings: Parameter registry
        :type bindings: Bindings

        NOTE: Any arguments that have default values will be treated as compiler settings!!
        """
        assert isinstance(bindings, Bindings)

        #: Parameter registry
        self.bindings = bindings

        #: The template, once input() is called
        self.template = None  # type: Template

        # Has the input() method been called already?
        self.input_received = False

        #: ids of the placeholders that were resolved against the bindings
        self.resolved_placeholders = set()

    def input(self, template):
        """ Receive the template to compile

        :type template: Template
        :rtype: TemplateCompilerBase
        """
        if self.input_received:
            raise RuntimeError("You can't use the {}.input() method twice. "
                               "Make a new compiler for every template!"
                               .format(self.__class__.__name__))

        self.template = template
        self.input_received = True
        return self

    def is_bound(self, name):
        """ Is there a binding for this name? """
        return name in self.bindings

    def resolve(self, name, default=None):
        """ Get the driver value bound to `name`, or the default """
        if name in self.bindings:
            return self.bindings.get(name)
        return default

    def consume(self, node):
        """ Mark the placeholders in `node` as resolved

        :type node: mongostmt.template.Node
        """
        for placeholder in iter_placeholders(node):
            self.resolved_placeholders.add(id(placeholder))

    def unresolved_placeholders(self):
        """ List the placeholders of the template that the compiler did not resolve

        Call it after compile_command()

        :rtype: list[mongostmt.template.Placeholder]
        """
        return [placeholder
                for placeholder in self.template.placeholders()
                if id(placeholder) not in self.resolved_placeholders]

    def compile_command(self):
        """ Compile the template into a command

        :rtype: mongostmt.command.CompiledCommand
        """
        raise NotImplementedError()
