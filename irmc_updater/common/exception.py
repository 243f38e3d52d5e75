# Copyright 2010 United States Government as represented by the
# Administrator of the National Aeronautics and Space Administration.
# All Rights Reserved.
#
#    Licensed under the Apache License, Version 2.0 (the "License"); you may
#    not use this file except in compliance with the License. You may obtain
#    a copy of the License at
#
#         http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
#    WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
#    License for the specific language governing permissions and limitations
#    under the License.

"""iRMC online update exceptions list."""
import collections
import json

from oslo_config import cfg
from oslo_log import log as logging
from oslo_utils import excutils

from irmc_updater.common.i18n import _

LOG = logging.getLogger(__name__)


CONF = cfg.CONF


def _ensure_exception_kwargs_serializable(exc_class_name, kwargs):
    """Ensure that kwargs are serializable

    Ensure that all kwargs passed to exception constructor can be turned
    into a message, by trying to convert them to JSON, or, as a last
    resort, to string. Unserializable kwargs are removed, letting the
    caller handle the exception string as it is configured to.

    :param exc_class_name: an IrmcUpdaterException class name.
    :param kwargs: a dictionary of keyword arguments passed to the exception
        constructor.
    :returns: a dictionary of serializable keyword arguments.
    """
    serializers = [(json.dumps, _('when converting to JSON')),
                   (str, _('when converting to string'))]
    exceptions = collections.defaultdict(list)
    serializable_kwargs = {}
    for k, v in kwargs.items():
        for serializer, msg in serializers:
            try:
                serializable_kwargs[k] = serializer(v)
                exceptions.pop(k, None)
                break
            except Exception as e:
                exceptions[k].append(
                    '(%(serializer_type)s) %(e_type)s: %(e_contents)s' %
                    {'serializer_type': msg, 'e_contents': e,
                     'e_type': e.__class__.__name__})
    if exceptions:
        LOG.error("One or more arguments passed to the %(exc_class)s "
                  "constructor as kwargs can not be serialized. The "
                  "serialized arguments: %(serialized)s. These "
                  "unserialized kwargs were dropped because of the "
                  "exceptions encountered during their "
                  "serialization:\n%(errors)s",
                  dict(errors=';\n'.join("%s: %s" % (k, '; '.join(v))
                                         for k, v in exceptions.items()),
                       exc_class=exc_class_name,
                       serialized=serializable_kwargs))
        for k in exceptions:
            del kwargs[k]
    return serializable_kwargs


class IrmcUpdaterException(Exception):
    """Base iRMC updater Exception

    To correctly use this class, inherit from it and define
    a '_msg_fmt' property. That _msg_fmt will get printf'd
    with the keyword arguments provided to the constructor.

    If you need to access the message from an exception you should use
    str(exc)

    """

    _msg_fmt = _("An unknown exception occurred.")

    def __init__(self, message=None, **kwargs):
        self.kwargs = _ensure_exception_kwargs_serializable(
            self.__class__.__name__, kwargs)

        if not message:
            try:
                message = self._msg_fmt % kwargs

            except Exception:
                with excutils.save_and_reraise_exception() as ctxt:
                    # kwargs doesn't match a variable in the message
                    # log the issue and the kwargs
                    prs = ', '.join('%s=%s' % pair for pair in kwargs.items())
                    LOG.exception('Exception in string format operation '
                                  '(arguments %s)', prs)
                    if not CONF.errors.fatal_exception_format_errors:
                        # at least get the core message out if something
                        # happened
                        message = self._msg_fmt
                        ctxt.reraise = False

        super(IrmcUpdaterException, self).__init__(message)


class Invalid(IrmcUpdaterException):
    _msg_fmt = _("Unacceptable parameters.")


class InvalidParameterValue(Invalid):
    _msg_fmt = "%(err)s"


class MissingParameterValue(InvalidParameterValue):
    _msg_fmt = "%(err)s"


class DriverOperationError(IrmcUpdaterException):
    _msg_fmt = _("Runtime driver failure. Reason: %(reason)s.")


class RedfishError(DriverOperationError):
    _msg_fmt = _("Redfish exception occurred. Error: %(error)s")


class RedfishConnectionError(RedfishError):
    _msg_fmt = _("Redfish connection failed for %(address)s: %(error)s")


class RedfishDecodeError(RedfishError):
    _msg_fmt = _("Failed to decode the Redfish response from %(url)s: "
                 "%(error)s")


class IRMCOperationError(DriverOperationError):
    _msg_fmt = _('iRMC %(operation)s failed. Reason: %(error)s')


class VendorDetectionFailed(IRMCOperationError):
    _msg_fmt = _("Failed to detect the OEM vendor of the iRMC from "
                 "%(url)s. Reason: %(error)s")


class IRMCLicenseError(IRMCOperationError):
    _msg_fmt = _("eLCM license check against %(url)s failed: %(error)s")


class OnlineUpdateError(IRMCOperationError):
    _msg_fmt = _("Online update request to %(url)s failed: %(error)s")


class OnlineUpdateCollectionNotReady(OnlineUpdateError):
    _msg_fmt = _("Online update collection at %(url)s was not ready "
                 "after %(retries)s retries")


class OnlineUpdateDeselectFailed(OnlineUpdateError):
    _msg_fmt = _("Deselecting update '%(designation)s' via %(url)s "
                 "failed: %(error)s")


class OnlineUpdateTaskFailed(IRMCOperationError):
    _msg_fmt = _("Online update task %(task)s did not complete "
                 "successfully. Details: %(error)s. Task log: %(log)s")


class RedfishTaskTimeout(IRMCOperationError):
    _msg_fmt = _("Task %(task)s did not reach a terminal state within "
                 "%(timeout)s seconds")
