from .settings_handler import StatementSettingsHandler
from .settings_dict import StatementSettingsDict
from .inspect import pluck_kwargs_from
