import argparse
import json
import math
import os
import re
import sys

import numpy as np
from PIL import Image

from descriptor_render import descriptor_to_dict, render_descriptor
from descriptor_solver import (
    DEFAULT_MAX_DEPTH,
    Descriptor,
    DescriptorError,
    Opaque,
    Reference,
    ValueList,
    decode_descriptor,
    decode_versioned_descriptor,
)
from stream_reader import StreamReader

# ==============================================================================
# 1. 基础工具 (Base Tools)
# ==============================================================================

def create_corpse_image(raw_bytes):
    """[Algorithm] 验尸工具: raw bytes -> square grayscale array, zero padded"""
    size = len(raw_bytes)
    if size == 0: return None
    side = int(math.ceil(math.sqrt(size)))
    padded = bytes(raw_bytes) + b'\x00' * (side * side - size)
    return np.frombuffer(padded, dtype='>u1').reshape((side, side))


def collect_opaque(descriptor, path=""):
    """Depth-first (path, Opaque) pairs for every alias/raw-data payload in the tree."""
    base = path or descriptor.class_id
    for idx, item in enumerate(descriptor.items):
        yield from _collect_value(item.value, f"{base}/{item.key or idx}")


def _collect_value(value, path):
    if isinstance(value, Opaque):
        yield path, value
    elif isinstance(value, Descriptor):
        yield from collect_opaque(value, path)
    elif isinstance(value, (ValueList, Reference)):
        for idx, item in enumerate(value.items):
            yield from _collect_value(item.value, f"{path}/{idx}")


def safe_name(text):
    return re.sub(r'[\\/*?:"<>|\s]', "_", str(text))

# ==============================================================================
# 2. Sequential Parser (8BIM blocks)
# ==============================================================================

class SequentialAbrParser:
    """
    Walks an ABR (v6+) file: u2 major, u2 minor, then `8BIM` blocks of
    signature, 4-char key, u4 length. Each `desc` block holds a versioned
    descriptor; other blocks are skipped.
    """

    def __init__(self, filepath, max_depth=DEFAULT_MAX_DEPTH, trace=False, keyed_lists=True):
        self.filepath = filepath
        self.max_depth = max_depth
        self.keyed_lists = keyed_lists
        self.trace = trace
        self.desc_data = []
        self.version = (0, 0)

    def parse(self):
        with open(self.filepath, 'rb') as f: full_data = f.read()
        return self.parse_bytes(full_data)

    def parse_bytes(self, full_data):
        reader = StreamReader(full_data, trace=self.trace)
        reader.message(f"\n{'='*80}\nStart Sequential Parsing: {self.filepath}\n{'='*80}\n")

        reader.message(">>> File Header")
        reader.indent()
        self.version = (reader.read_u2("Major Ver"), reader.read_u2("Minor Ver"))
        reader.dedent()

        if self.version[0] < 6:
            reader.message(f"[Info] ABR v{self.version[0]} carries no 8BIM blocks")
            return self.desc_data

        while not reader.is_eof():
            reader.message(f"\n>>> Block Segment (Offset 0x{reader.tell():08X})")
            reader.indent()
            sig_raw = reader.peek_bytes(4)
            if len(sig_raw) < 4:
                reader.skip(len(sig_raw), "Tail Padding")
                reader.dedent()
                break

            if sig_raw != b'8BIM':
                reader.message("[Info] Non-8BIM signature, treating as padding...")
                reader.skip(1, "Padding")
                reader.dedent()
                continue

            reader.read_str(4, "Signature")
            key = reader.read_str(4, "Block Key")
            length = reader.read_u4("Block Length")

            reader.indent()
            if key == 'desc':
                # the block bounds the descriptor; running past it is a truncation
                block = StreamReader(reader.read_bytes(length, "Block Data"), trace=reader.trace)
                block.indent_level = reader.indent_level
                self.parse_8bimdesc_block(block)
            else:
                reader.skip(length, f"Ignored ({key})")
            reader.dedent()
            reader.dedent()
        return self.desc_data

    def parse_8bimdesc_block(self, block):
        block.message(f"--- 8BIMdesc Parsing ({block.remaining()} bytes) ---")
        desc = decode_versioned_descriptor(block, max_depth=self.max_depth, keyed_lists=self.keyed_lists)
        self.desc_data.append(desc)
        if not block.is_eof(): block.skip(block.remaining(), "Block Trailing")

    # --- Outputs ---

    def save_text(self, out_dir="output", filename="desc_output.txt"):
        os.makedirs(out_dir, exist_ok=True)
        out_path = os.path.join(out_dir, filename)
        with open(out_path, 'w', encoding='utf-8') as f:
            f.write("\n\n".join(render_descriptor(d) for d in self.desc_data) + "\n")
        return out_path

    def save_json(self, out_dir="output", filename="desc_output.json"):
        os.makedirs(out_dir, exist_ok=True)
        out_path = os.path.join(out_dir, filename)
        with open(out_path, 'w', encoding='utf-8') as f:
            json.dump([descriptor_to_dict(d) for d in self.desc_data], f, indent=4, ensure_ascii=False)
        print(f"[Success] Saved {len(self.desc_data)} descriptors to {out_path}")
        return out_path

    def save_images(self, out_dir="output"):
        os.makedirs(out_dir, exist_ok=True)
        saved = []
        for d_idx, desc in enumerate(self.desc_data):
            for path, opaque in collect_opaque(desc):
                label = f"desc{d_idx}_{safe_name(path)}"
                arr = create_corpse_image(opaque.data)
                if arr is None: continue
                fname = os.path.join(out_dir, f"{label}.png")
                Image.fromarray(arr, 'L').save(fname)
                print(f"    [Corpse] {label} ({arr.shape[1]}x{arr.shape[0]}) -> {fname}")
                saved.append(fname)
        return saved

# ==============================================================================
# 3. Command Line
# ==============================================================================

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Decode and print Action Descriptors from ABR files or raw blobs.")
    parser.add_argument("input", help="ABR file, or a raw descriptor blob with --raw")
    parser.add_argument("--raw", action="store_true", help="Input is a bare descriptor, not an ABR file")
    parser.add_argument("--versioned", action="store_true", help="With --raw: blob starts with the u4 descriptor version (16)")
    parser.add_argument("--out", default=None, help="Write desc_output.txt/.json here")
    parser.add_argument("--images", action="store_true", help="Also dump alis/tdta payloads as grayscale PNGs")
    parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH, help=f"Nesting limit (default {DEFAULT_MAX_DEPTH})")
    parser.add_argument("--keyless-lists", action="store_true", help="VlLs items carry no key (Photoshop layout)")
    parser.add_argument("--trace", action="store_true", help="Print every primitive read with its offset")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    p = SequentialAbrParser(args.input, max_depth=args.max_depth, trace=args.trace,
                            keyed_lists=not args.keyless_lists)
    try:
        if args.raw:
            with open(args.input, 'rb') as f: blob = f.read()
            decode = decode_versioned_descriptor if args.versioned else decode_descriptor
            p.desc_data.append(decode(blob, max_depth=args.max_depth, trace=args.trace, keyed_lists=p.keyed_lists))
        else:
            p.parse()
    except DescriptorError as e:
        print(f"[Err] {args.input}: {e}", file=sys.stderr)
        return 1

    for desc in p.desc_data:
        print(render_descriptor(desc))

    out_dir = args.out
    if out_dir is None and args.images:
        out_dir = args.input + '-' + "output"
    if out_dir is not None:
        p.save_text(out_dir)
        p.save_json(out_dir)
        if args.images: p.save_images(out_dir)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
