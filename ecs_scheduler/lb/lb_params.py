#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Constants for the load balancers and DNS records management
"""

SCHEME_INTERNAL = "internal"
SCHEME_EXTERNAL = "internet-facing"

APP_ID_TAG = "AppID"
PROCESS_TYPE_TAG = "ProcessType"

HTTP_PORT = 80
HTTPS_PORT = 443

# DescribeTags accepts at most 20 load balancer names
DESCRIBE_PAGE_SIZE = 20

DEFAULT_CONNECTION_DRAINING_TIMEOUT = 30
DEFAULT_RECORD_TTL = 60
CNAME_RECORD = "CNAME"
