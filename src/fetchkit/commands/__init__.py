"""Built-in CLI sub-commands for fetchkit.

* :mod:`~fetchkit.commands.request` -- send a request through an
  :class:`~fetchkit.client.AsyncClient`.
* :mod:`~fetchkit.commands.config` -- view and modify the user configuration.
"""
