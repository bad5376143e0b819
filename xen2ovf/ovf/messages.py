# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# xen2ovf/ovf/messages.py
"""Captions, descriptions and Info texts written into envelopes."""

ENVELOPE_INFO = "Exported virtual systems"
REFERENCES_INFO = "File references"
DISK_SECTION_INFO = "Virtual disk information"
NETWORK_SECTION_INFO = "List of logical networks used in the package"
STARTUP_SECTION_INFO = "Startup order of the virtual systems"
VIRTUAL_SYSTEM_INFO = "A virtual machine"
VIRTUAL_SYSTEM_COLLECTION_INFO = "A collection of virtual machines"
HARDWARE_SECTION_INFO = "Virtual hardware requirements for a virtual machine"
OTHER_SETTINGS_INFO = "Platform specific settings"

OPERATING_SYSTEM_INFO = "Specifies the operating system installed"
OPERATING_SYSTEM_VERSION = "Version {major}.{minor}"

VSSD_CAPTION = "Virtual System Setting Data"

CPU_CAPTION = "{count} virtual CPU"
CPU_DESCRIPTION = "Number of virtual CPUs"
MEMORY_CAPTION = "{size} MB of memory"
MEMORY_DESCRIPTION = "Memory Size"
NIC_CAPTION = "Ethernet adapter on {network}"
NIC_DESCRIPTION = "Virtual network interface"
CDROM_CAPTION = "CD-ROM"
CDROM_DESCRIPTION = "CD-ROM Drive"
DISK_CAPTION = "Disk"
DISK_DESCRIPTION = "Virtual disk"

OTHER_SETTING_GENERIC = "Platform setting"
OTHER_SETTING_SHADOW = "Shadow memory multiplier"
OTHER_SETTING_BOOT_POLICY = "HVM boot policy"
OTHER_SETTING_PLATFORM = "Platform flags"
OTHER_SETTING_VGPU = "Virtual GPU assignment"
OTHER_SETTING_PVS_SITE = "PVS site association"
OTHER_SETTING_BOOT_PARAMS = "HVM boot parameters"
OTHER_SETTING_NVRAM = "Non-volatile RAM"

# Progress messages
FILES_TRANSPORT_SETUP = "Setting up transfer of {file}"
FILES_TRANSPORT_CLEANUP = "Cleaning up transfer of {file}"
ERROR_VM_NOT_HALTED = "VM {vm} must be halted or suspended before it can be exported"
COMPLETED_EXPORT = "Export completed"
