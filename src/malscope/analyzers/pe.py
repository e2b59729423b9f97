# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Portable Executable parsing with pefile and code disassembly with capstone."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime

import capstone
import pefile

from malscope.models.analysis import (
    ImportGroup,
    OpcodeCount,
    OpcodeData,
    PEHeader,
    SectionEntropy,
)

logger = logging.getLogger("malscope.analyzers.pe")

# Upper bound on bytes fed to the disassembler per artifact.
MAX_CODE_BYTES = 256 * 1024
MAX_HISTOGRAM = 20
MAX_SEQUENCES = 5
SEQUENCE_LENGTH = 4

_IMAGE_FLAGS = sorted(
    pefile.retrieve_flags(pefile.IMAGE_CHARACTERISTICS, "IMAGE_FILE_"), key=lambda f: f[1]
)
_DLL_FLAGS = sorted(
    pefile.retrieve_flags(pefile.DLL_CHARACTERISTICS, "IMAGE_DLLCHARACTERISTICS_"),
    key=lambda f: f[1],
)
_BRANCH_GROUPS = (capstone.CS_GRP_CALL, capstone.CS_GRP_RET, capstone.CS_GRP_JUMP)


@dataclass
class ParsedPE:
    header: PEHeader
    sections: list[SectionEntropy] = field(default_factory=list)
    imports: list[ImportGroup] = field(default_factory=list)
    opcodes: OpcodeData = field(default_factory=OpcodeData)


def _flag_names(value: int, flags: list[tuple[str, int]], prefix: str) -> list[str]:
    return [name.removeprefix(prefix) for name, bit in flags if value & bit]


def _section_name(section: pefile.SectionStructure, index: int) -> str:
    return section.Name.rstrip(b"\x00").decode("ascii", errors="replace") or f"section{index}"


def _read_header(pe: pefile.PE) -> PEHeader:
    fh, oh = pe.FILE_HEADER, pe.OPTIONAL_HEADER
    machine = pefile.MACHINE_TYPE.get(fh.Machine)
    subsystem = pefile.SUBSYSTEM_TYPE.get(oh.Subsystem)
    return PEHeader(
        machine=machine.removeprefix("IMAGE_FILE_MACHINE_") if machine else f"0x{fh.Machine:04X}",
        number_of_sections=fh.NumberOfSections,
        timestamp=datetime.fromtimestamp(fh.TimeDateStamp, UTC).isoformat(),
        characteristics=_flag_names(fh.Characteristics, _IMAGE_FLAGS, "IMAGE_FILE_"),
        subsystem=subsystem.removeprefix("IMAGE_SUBSYSTEM_") if subsystem else str(oh.Subsystem),
        dll_characteristics=_flag_names(
            oh.DllCharacteristics, _DLL_FLAGS, "IMAGE_DLLCHARACTERISTICS_"
        ),
        entry_point=f"0x{oh.AddressOfEntryPoint:08X}",
        image_base=f"0x{oh.ImageBase:016X}",
        section_alignment=oh.SectionAlignment,
        file_alignment=oh.FileAlignment,
    )


def _read_sections(pe: pefile.PE) -> list[SectionEntropy]:
    return [
        SectionEntropy(
            name=_section_name(section, index),
            entropy=round(min(max(section.get_entropy(), 0.0), 8.0), 4),
            size=section.SizeOfRawData,
            virtual_size=section.Misc_VirtualSize,
        )
        for index, section in enumerate(pe.sections)
    ]


def _read_imports(pe: pefile.PE) -> list[ImportGroup]:
    """One group per imported module, in import-table order."""
    by_dll: dict[str, list[str]] = {}
    for entry in getattr(pe, "DIRECTORY_ENTRY_IMPORT", []):
        dll = entry.dll.decode("ascii", errors="replace")
        functions = by_dll.setdefault(dll, [])
        for imp in entry.imports:
            if imp.name:
                name = imp.name.decode("ascii", errors="replace")
            else:
                name = f"Ordinal_{imp.ordinal}"
            if name not in functions:
                functions.append(name)
    return [ImportGroup(dll=dll, functions=functions) for dll, functions in by_dll.items()]


def _disassembler(pe: pefile.PE) -> capstone.Cs | None:
    machine = pe.FILE_HEADER.Machine
    if machine == pefile.MACHINE_TYPE["IMAGE_FILE_MACHINE_I386"]:
        md = capstone.Cs(capstone.CS_ARCH_X86, capstone.CS_MODE_32)
    elif machine == pefile.MACHINE_TYPE["IMAGE_FILE_MACHINE_AMD64"]:
        md = capstone.Cs(capstone.CS_ARCH_X86, capstone.CS_MODE_64)
    else:
        return None
    md.detail = True
    return md


def _code_sections(pe: pefile.PE) -> list[pefile.SectionStructure]:
    executable = [s for s in pe.sections if s.IMAGE_SCN_MEM_EXECUTE]
    if executable:
        return executable
    entry = pe.get_section_by_rva(pe.OPTIONAL_HEADER.AddressOfEntryPoint)
    return [entry] if entry is not None else []


def _render(insn: capstone.CsInsn) -> str:
    return f"{insn.mnemonic} {insn.op_str}".strip().upper()


def disassemble(pe: pefile.PE) -> OpcodeData:
    """Mnemonic histogram and the most frequent instruction runs ending in a branch.

    Only x86 and x86-64 images are disassembled; other machines yield an
    empty :class:`OpcodeData`.
    """
    md = _disassembler(pe)
    if md is None:
        return OpcodeData()

    mnemonics: Counter[str] = Counter()
    runs: Counter[str] = Counter()
    budget = MAX_CODE_BYTES
    for section in _code_sections(pe):
        if budget <= 0:
            break
        code = section.get_data(ignore_padding=True)[:budget]
        budget -= len(code)
        window: list[str] = []
        base = pe.OPTIONAL_HEADER.ImageBase + section.VirtualAddress
        for insn in md.disasm(code, base):
            mnemonics[insn.mnemonic.upper()] += 1
            window = (window + [_render(insn)])[-SEQUENCE_LENGTH:]
            if any(insn.group(g) for g in _BRANCH_GROUPS):
                if len(window) > 1:
                    runs["; ".join(window)] += 1
                window = []

    return OpcodeData(
        histogram=[
            OpcodeCount(opcode=op, count=count)
            for op, count in mnemonics.most_common(MAX_HISTOGRAM)
        ],
        sequences=[run for run, _ in runs.most_common(MAX_SEQUENCES)],
    )


def parse_pe(content: bytes) -> ParsedPE | None:
    """Parse *content* as a PE image; ``None`` when it is not one."""
    try:
        pe = pefile.PE(data=content, fast_load=True)
    except pefile.PEFormatError:
        return None
    try:
        pe.parse_data_directories(
            directories=[pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_IMPORT"]]
        )
        parsed = ParsedPE(
            header=_read_header(pe),
            sections=_read_sections(pe),
            imports=_read_imports(pe),
            opcodes=disassemble(pe),
        )
        for warning in pe.get_warnings():
            logger.debug("pefile: %s", warning)
        return parsed
    finally:
        pe.close()
