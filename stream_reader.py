import struct
from dataclasses import dataclass

# ==============================================================================
# 1. 错误类型 (Stream Errors)
# ==============================================================================

class DescriptorError(ValueError):
    """Base class for every failure raised while reading descriptor data."""


class StreamTruncated(DescriptorError):
    def __init__(self, offset, needed, remaining):
        self.offset = offset
        self.needed = needed
        self.remaining = remaining
        super().__init__(
            f"EOF at 0x{offset:08X}: need {needed} bytes, {remaining} remaining"
        )

# ==============================================================================
# 2. 矩形 (Rectangle)
# ==============================================================================

@dataclass(frozen=True)
class Rectangle:
    top: int
    left: int
    bottom: int
    right: int

    @property
    def x(self): return self.left

    @property
    def y(self): return self.top

    @property
    def width(self): return self.right - self.left

    @property
    def height(self): return self.bottom - self.top

# ==============================================================================
# 3. 流式读取器 (StreamReader)
# ==============================================================================

class StreamReader:
    """
    Forward-only big-endian cursor over an in-memory buffer.

    Every primitive read checks the remaining length first and raises
    StreamTruncated instead of returning short data. With trace=True each
    read is printed with its absolute offset, indented by nesting level.
    """

    def __init__(self, data, trace=False):
        self.data = bytes(data)
        self.cursor = 0
        self.length = len(self.data)
        self.indent_level = 0
        self.indent_str = "    "
        self.trace = trace

    def indent(self): self.indent_level += 1
    def dedent(self):
        if self.indent_level > 0: self.indent_level -= 1
    def is_eof(self): return self.cursor >= self.length
    def tell(self): return self.cursor
    def remaining(self): return self.length - self.cursor

    def message(self, text):
        if self.trace:
            print(f"{self.indent_str * self.indent_level}{text}")

    def _log(self, size, name, value_repr):
        if not self.trace: return
        prefix = self.indent_str * self.indent_level
        print(f"[0x{self.cursor-size:08X}] {prefix}{name:<25} : {value_repr}")

    def _take(self, length):
        if length < 0 or self.cursor + length > self.length:
            raise StreamTruncated(self.cursor, length, self.remaining())
        raw = self.data[self.cursor:self.cursor+length]
        self.cursor += length
        return raw

    # --- Hex dumps (trace only) ---

    def _print_hex_chunk(self, offset, raw_bytes, prefix):
        """Standard Hex Printer (16 bytes per line)"""
        chunk_size = 16
        for i in range(0, len(raw_bytes), chunk_size):
            chunk = raw_bytes[i:i + chunk_size]
            hex_part = ' '.join(f'{b:02x}' for b in chunk).ljust(chunk_size * 3)
            ascii_part = ''.join(chr(b) if 32 <= b <= 126 else '.' for b in chunk)
            print(f"{prefix}0x{offset + i:08X} | {hex_part} | {ascii_part}")

    def _dump_hex_smart_internal(self, offset, raw_bytes, prefix):
        # > 128 bytes: head 64 + ... + tail 64
        size = len(raw_bytes)
        if size <= 128:
            self._print_hex_chunk(offset, raw_bytes, prefix)
        else:
            self._print_hex_chunk(offset, raw_bytes[:64], prefix)
            print(f"{prefix}..." + " " * 30 + f"[ Skipped {size - 128} bytes ]" + " " * 5 + "...")
            self._print_hex_chunk(offset + size - 64, raw_bytes[-64:], prefix)

    def dump_section_smart(self, start_offset, end_offset, label="Context"):
        if not self.trace: return
        start_offset = max(0, start_offset)
        end_offset = min(self.length, end_offset)

        size = end_offset - start_offset
        prefix = self.indent_str * (self.indent_level + 1)

        print(f"{prefix}>>> Smart Dump: {label} (Range: 0x{start_offset:08X}-0x{end_offset:08X}, Size: {size})")
        print(f"{prefix}{'='*80}")
        if size <= 0:
            print(f"{prefix}[Empty Section]")
        else:
            self._dump_hex_smart_internal(start_offset, self.data[start_offset:end_offset], prefix)
        print(f"{prefix}{'='*80}")

    # --- Primitive reads ---

    def read_u1(self, name="Uint8"):
        val = self._take(1)[0]
        self._log(1, name, f"{val} (0x{val:02X})")
        return val

    def read_u2(self, name="Uint16"):
        val = struct.unpack('>H', self._take(2))[0]
        self._log(2, name, f"{val}")
        return val

    def read_u4(self, name="Uint32"):
        val = struct.unpack('>I', self._take(4))[0]
        self._log(4, name, f"{val}")
        return val

    def read_i4(self, name="Int32"):
        val = struct.unpack('>i', self._take(4))[0]
        self._log(4, name, f"{val}")
        return val

    def read_double(self, name="Double"):
        val = struct.unpack('>d', self._take(8))[0]
        self._log(8, name, f"{val:.6f}")
        return val

    def read_str(self, length, name="String"):
        # latin-1 maps every byte, so unknown tags still come back verbatim
        val = self._take(length).decode('latin-1')
        self._log(length, name, f"'{val}'")
        return val

    def read_ostype(self, name="OSType"):
        return self.read_str(4, name)

    def read_unicode_string(self, name="UnicodeString"):
        char_len = self.read_u4(name + ".CharLen")
        if char_len == 0: return ""
        raw = self._take(char_len * 2)
        val = raw.decode('utf-16-be', errors='replace').rstrip('\x00')
        self._log(char_len * 2, name + ".Val", f"'{val}'")
        return val

    def read_dynamic_string(self, name="DynamicString"):
        length = self.read_u4(name + ".Len")
        if length == 0:
            return self.read_ostype(name + ".Code")
        val = self._take(length).decode('ascii', errors='replace')
        self._log(length, name + ".Val", f"'{val}'")
        return val

    def read_bytes(self, length, name="Bytes"):
        raw = self._take(length)
        if self.trace:
            disp = raw[:16].hex()
            if len(raw) > 16: disp += "..."
            self._log(length, name, f"Size:{length} [{disp}]")
        return raw

    def skip(self, length, name="Skipped"):
        self._take(length)
        self._log(length, name, f"Jump {length} bytes")

    def peek_bytes(self, length):
        return self.data[self.cursor : self.cursor + length]

    def read_rect(self, name="Rect"):
        return Rectangle(
            self.read_i4(f"{name}.Top"),
            self.read_i4(f"{name}.Left"),
            self.read_i4(f"{name}.Bottom"),
            self.read_i4(f"{name}.Right"),
        )
