# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""nodeagent - pull-based configuration client for managed hosts.

Builds the node identity, registers and authenticates with the
configuration server, applies attribute files, saves the node and hands
the compiled resource graph to an execution engine.
"""

__version__ = "0.1.0"
