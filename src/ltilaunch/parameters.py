# SPDX-FileCopyrightText: 2023 Mark Liffiton <liffiton@gmail.com>
#
# SPDX-License-Identifier: AGPL-3.0-only

"""
LTI 1.x launch parameter vocabulary and classification of a raw launch
payload into OAuth, LTI, custom, and extension parameters.

https://www.imsglobal.org/specs/ltiv1p1/implementation-guide
"""

from collections.abc import Mapping
from dataclasses import dataclass, field

LTI_MESSAGE_TYPE = 'lti_message_type'
LTI_VERSION = 'lti_version'
ROLES = 'roles'
BASIC_LAUNCH_REQUEST = 'basic-lti-launch-request'

USER_PARAMETERS = (
    'user_id',
    'user_image',
    ROLES,
    'lis_person_name_full',
    'lis_person_name_family',
    'lis_person_name_given',
    'lis_person_sourcedid',
)

RESOURCE_PARAMETERS = (
    'resource_link_id',
    'resource_link_title',
    'resource_link_description',
)

CONTEXT_PARAMETERS = (
    'context_id',
    'context_type',
    'context_title',
    'context_label',
)

CONSUMER_PARAMETERS = (
    'tool_consumer_info_product_family_code',
    'tool_consumer_info_version',
    'tool_consumer_instance_contact_email',
    'tool_consumer_instance_description',
    'tool_consumer_instance_guid',
    'tool_consumer_instance_name',
    'tool_consumer_instance_url',
)

LAUNCH_PARAMETERS = frozenset([
    LTI_MESSAGE_TYPE,
    LTI_VERSION,
    *USER_PARAMETERS,
    *RESOURCE_PARAMETERS,
    *CONTEXT_PARAMETERS,
    *CONSUMER_PARAMETERS,
    'role_scope_mentor',
    'lis_person_contact_email_primary',
    'lis_course_offering_sourcedid',
    'lis_course_section_sourcedid',
    'lis_result_sourcedid',
    'lis_outcome_service_url',
    'launch_presentation_locale',
    'launch_presentation_document_target',
    'launch_presentation_css_url',
    'launch_presentation_width',
    'launch_presentation_height',
    'launch_presentation_return_url',
])

CATEGORIES = ('oauth', 'lti', 'custom', 'ext')


@dataclass(frozen=True)
class ClassifiedParameters:
    oauth: dict[str, str] = field(default_factory=dict)
    lti: dict[str, str] = field(default_factory=dict)
    custom: dict[str, str] = field(default_factory=dict)
    ext: dict[str, str] = field(default_factory=dict)

    def category(self, name: str) -> dict[str, str]:
        if name not in CATEGORIES:
            raise ValueError(f"Unknown parameter category: {name}")
        params: dict[str, str] = getattr(self, name)
        return params


def is_launch_parameter(key: str) -> bool:
    return key in LAUNCH_PARAMETERS


def classify(parameters: Mapping[str, str]) -> ClassifiedParameters:
    """ Sort each parameter into exactly one category (or none).

    The first matching rule wins: an 'oauth_' prefix, then the LTI launch
    vocabulary, then 'custom_' and 'ext_' prefixes.  Anything else is dropped.
    """
    result = ClassifiedParameters()
    for key, val in parameters.items():
        if key.startswith('oauth_'):
            result.oauth[key] = val
        elif is_launch_parameter(key):
            result.lti[key] = val
        elif key.startswith('custom_'):
            result.custom[key] = val
        elif key.startswith('ext_'):
            result.ext[key] = val
    return result
