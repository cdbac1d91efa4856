#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Package to manage the Apps processes with AWS ECS services and task definitions.
"""
