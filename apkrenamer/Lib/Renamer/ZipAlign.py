import io
import os
import struct
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from apkrenamer.Lib.Renamer.Errors import ArchiveFormatError

LOCAL_HEADER_SIG = b"PK\x03\x04"
CENTRAL_HEADER_SIG = b"PK\x01\x02"
END_OF_CD_SIG = b"PK\x05\x06"
DATA_DESCRIPTOR_SIG = b"PK\x07\x08"

LOCAL_HEADER_SIZE = 30
CENTRAL_HEADER_SIZE = 46
END_OF_CD_SIZE = 22
MAX_COMMENT = 0xFFFF
ALIGNMENT_EXTRA_ID = 0xD935  # Android zip alignment extra field
FLAG_DATA_DESCRIPTOR = 0x08
ZIP64_LIMIT = 0xFFFFFFFF

DEFAULT_ALIGNMENT = 4


@dataclass(frozen=True)
class ZipEntryRecord:
    name: str
    compressed_size: int
    uncompressed_size: int
    compress_type: int
    header_offset: int
    flag_bits: int

    @property
    def is_stored(self) -> bool:
        return self.compress_type == zipfile.ZIP_STORED


def padding_for(offset: int, alignment: int) -> int:
    return (alignment - offset % alignment) % alignment


class ZipAlign:
    """
    Repacks a zip so that every stored entry's data starts on an `alignment`
    byte boundary, the same way Android's zipalign does it: stored entries get
    zero padding in their local extra field, everything else (compressed data,
    data descriptors, central directory records, archive comment) is copied
    byte for byte with only offsets patched.
    """

    def __init__(self, alignment: int = DEFAULT_ALIGNMENT):
        if alignment < 1:
            raise ValueError(f"Alignment must be positive, got {alignment}")
        self.alignment = alignment

    def read_entries(self, data: bytes) -> List[ZipEntryRecord]:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                infos = zf.infolist()
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, EOFError) as e:
            raise ArchiveFormatError(f"Cannot read zip entries: {e}") from e

        entries = []
        for info in infos:
            if max(info.compress_size, info.file_size, info.header_offset) >= ZIP64_LIMIT:
                raise ArchiveFormatError(f"Zip64 entries are not supported: {info.filename}")
            entries.append(ZipEntryRecord(
                name=info.filename,
                compressed_size=info.compress_size,
                uncompressed_size=info.file_size,
                compress_type=info.compress_type,
                header_offset=info.header_offset,
                flag_bits=info.flag_bits,
            ))
        return entries

    def align(self, input_path, output_path) -> List[ZipEntryRecord]:
        input_path = Path(input_path)
        output_path = Path(output_path)
        try:
            data = input_path.read_bytes()
        except OSError as e:
            raise ArchiveFormatError(f"Cannot read {input_path}: {e}") from e

        entries = self.read_entries(data)
        aligned = self.align_bytes(data, entries)
        self._persist(aligned, output_path)

        stored = sum(1 for entry in entries if entry.is_stored)
        print(f"[RENAMER] Aligned {stored}/{len(entries)} stored entries to {self.alignment} bytes: {output_path}")
        return entries

    def align_bytes(self, data: bytes, entries: List[ZipEntryRecord]) -> bytes:
        eocd_offset = self._find_end_of_cd(data)
        _, _, _, _, total, cd_size, cd_offset, _ = struct.unpack(
            "<4sHHHHIIH", data[eocd_offset:eocd_offset + END_OF_CD_SIZE]
        )
        if cd_offset + cd_size != eocd_offset:
            raise ArchiveFormatError("Central directory does not end at the end record")
        central = self._read_central_directory(data, cd_offset, total)

        if [name for name, _ in central] != [entry.name for entry in entries]:
            raise ArchiveFormatError("Central directory and enumerated entries diverge")

        out = io.BytesIO()
        offsets = []
        for entry in entries:
            offsets.append(out.tell())
            out.write(self._copy_entry(data, entry, out.tell()))

        new_cd_offset = out.tell()
        for (_, header), offset in zip(central, offsets):
            out.write(header[:42] + struct.pack("<I", offset) + header[46:])
        new_cd_size = out.tell() - new_cd_offset

        eocd = data[eocd_offset:]
        out.write(
            eocd[:8]
            + struct.pack("<HHII", len(entries), len(entries), new_cd_size, new_cd_offset)
            + eocd[20:]
        )
        return out.getvalue()

    def verify(self, path) -> List[str]:
        """Names of stored entries whose data is not aligned."""
        misaligned = []
        data = Path(path).read_bytes()
        for entry in self.read_entries(data):
            if entry.is_stored and self.data_offset(data, entry) % self.alignment:
                misaligned.append(entry.name)
        return misaligned

    @staticmethod
    def data_offset(data: bytes, entry: ZipEntryRecord) -> int:
        header = data[entry.header_offset:entry.header_offset + LOCAL_HEADER_SIZE]
        if len(header) < LOCAL_HEADER_SIZE or header[:4] != LOCAL_HEADER_SIG:
            raise ArchiveFormatError(f"Missing local header for {entry.name}")
        n, m = struct.unpack("<HH", header[26:30])
        return entry.header_offset + LOCAL_HEADER_SIZE + n + m

    def _copy_entry(self, data: bytes, entry: ZipEntryRecord, out_offset: int) -> bytes:
        start = entry.header_offset
        header = data[start:start + LOCAL_HEADER_SIZE]
        if len(header) < LOCAL_HEADER_SIZE or header[:4] != LOCAL_HEADER_SIG:
            raise ArchiveFormatError(f"Missing local header for {entry.name}")

        n, m = struct.unpack("<HH", header[26:30])
        name = data[start + LOCAL_HEADER_SIZE:start + LOCAL_HEADER_SIZE + n]
        extra = data[start + LOCAL_HEADER_SIZE + n:start + LOCAL_HEADER_SIZE + n + m]
        payload_start = start + LOCAL_HEADER_SIZE + n + m
        payload = data[payload_start:payload_start + entry.compressed_size]
        if len(payload) != entry.compressed_size:
            raise ArchiveFormatError(f"Truncated data for {entry.name}")

        descriptor = b""
        if entry.flag_bits & FLAG_DATA_DESCRIPTOR:
            descriptor_start = payload_start + entry.compressed_size
            length = 16 if data[descriptor_start:descriptor_start + 4] == DATA_DESCRIPTOR_SIG else 12
            descriptor = data[descriptor_start:descriptor_start + length]
            if len(descriptor) != length:
                raise ArchiveFormatError(f"Truncated data descriptor for {entry.name}")

        if entry.is_stored:
            extra = self._aligned_extra(extra, out_offset + LOCAL_HEADER_SIZE + n)
            if len(extra) > 0xFFFF:
                raise ArchiveFormatError(f"Extra field too large for {entry.name}")
            header = header[:28] + struct.pack("<H", len(extra))

        return header + name + extra + payload + descriptor

    def _aligned_extra(self, extra: bytes, extra_offset: int) -> bytes:
        kept = b""
        while len(extra) >= 4:
            header_id, size = struct.unpack("<HH", extra[:4])
            if size > len(extra) - 4:
                break
            # zero records are leftover padding from an earlier alignment
            if header_id != ALIGNMENT_EXTRA_ID and not (header_id == 0 and size == 0):
                kept += extra[:size + 4]
            extra = extra[size + 4:]
        return kept + b"\x00" * padding_for(extra_offset + len(kept), self.alignment)

    @staticmethod
    def _find_end_of_cd(data: bytes) -> int:
        search_from = max(0, len(data) - END_OF_CD_SIZE - MAX_COMMENT)
        offset = data.rfind(END_OF_CD_SIG, search_from)
        # a comment may itself contain the signature; the real record ends the file
        while offset != -1:
            if offset + END_OF_CD_SIZE <= len(data):
                comment_len = struct.unpack("<H", data[offset + 20:offset + 22])[0]
                if offset + END_OF_CD_SIZE + comment_len == len(data):
                    break
            offset = data.rfind(END_OF_CD_SIG, search_from, offset)
        if offset == -1:
            raise ArchiveFormatError("End of central directory record not found")

        disk, cd_disk, disk_entries, total, _, cd_offset = struct.unpack(
            "<HHHHII", data[offset + 4:offset + 20]
        )
        if disk or cd_disk or disk_entries != total:
            raise ArchiveFormatError("Multi-disk archives are not supported")
        if total == 0xFFFF or cd_offset == ZIP64_LIMIT:
            raise ArchiveFormatError("Zip64 archives are not supported")
        return offset

    @staticmethod
    def _read_central_directory(data: bytes, cd_offset: int, total: int) -> List[Tuple[str, bytes]]:
        records = []
        position = cd_offset
        for _ in range(total):
            header = data[position:position + CENTRAL_HEADER_SIZE]
            if len(header) < CENTRAL_HEADER_SIZE or header[:4] != CENTRAL_HEADER_SIG:
                raise ArchiveFormatError(f"Bad central directory record at offset {position}")
            flags = struct.unpack("<H", header[8:10])[0]
            n, m, k = struct.unpack("<HHH", header[28:34])
            record = data[position:position + CENTRAL_HEADER_SIZE + n + m + k]
            raw_name = record[CENTRAL_HEADER_SIZE:CENTRAL_HEADER_SIZE + n]
            name = raw_name.decode("utf-8" if flags & 0x800 else "cp437")
            records.append((name, record))
            position += len(record)
        return records

    @staticmethod
    def _persist(content: bytes, output_path: Path):
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=output_path.parent, prefix=".align-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content)
            os.replace(temp_name, output_path)
        except OSError:
            if os.path.exists(temp_name):
                os.remove(temp_name)
            raise
