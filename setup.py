#!/usr/bin/env python
# Copyright (c) 2013 Hewlett-Packard Development Company, L.P.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or
# implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import setuptools

project = 'irmc-updater'

setuptools.setup(
    name=project,
    version='1.0.0',
    description='iRMC eLCM online update orchestration over Redfish',
    classifiers=[
        'Intended Audience :: Information Technology',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: Apache Software License',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3 :: Only',
        ],
    python_requires='>=3.9',
    packages=setuptools.find_packages(include=['irmc_updater',
                                                'irmc_updater.*']),
    include_package_data=True,
    install_requires=[
        'oslo.concurrency>=4.2.0',
        'oslo.config>=6.8.0',
        'oslo.i18n>=3.20.0',
        'oslo.log>=4.3.0',
        'oslo.serialization>=2.25.0',
        'oslo.utils>=4.5.0',
        'rfc3986>=1.2.0',
        'sushy>=4.8.0',
        'tenacity>=6.2.0',
    ],
    extras_require={
        'test': [
            'fixtures>=3.0.0',
            'oslotest>=3.2.0',
            'stestr>=2.0.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'irmc-online-update = irmc_updater.cmd.online_update:main',
        ],
        'oslo.config.opts': [
            'irmc_updater = irmc_updater.conf.opts:list_opts',
        ],
    },
)
