"""
Catalog ingestion: feature vectors and the color signature index.

Processes a directory of product images and writes:
    - catalog.json          products with their stored FeatureVectors
    - faiss_color.index     FAISS index of color signatures
    - catalog_ids.npy       maps index positions to product ids

Feature vectors are computed once per product here and reused for every
search until the product's image changes (see featurize_product).
Supports both small catalogs (FlatL2 exact search) and large catalogs
(IVFFlat approximate search with configurable clusters).
"""

import os
import json
import logging
from typing import Any, Optional

import faiss
import numpy as np

from .features import analyze_image
from .histograms import color_signature
from .models import Product
from .preprocessing import DecodeError

logger = logging.getLogger(__name__)

CATALOG_FILE = "catalog.json"
FAISS_FILE = "faiss_color.index"
IDS_FILE = "catalog_ids.npy"

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.webp'}

# Threshold for switching from exact to approximate FAISS index
IVF_THRESHOLD = int(os.environ.get("IVF_THRESHOLD", "1000"))


def featurize_product(product: Any, image: bytes) -> Product:
    """
    Return a copy of product with features recomputed from its image.

    Raises:
        DecodeError: If the image cannot be decoded.
    """
    product = Product.from_dict(product)
    record = product.to_dict()
    record["features"] = analyze_image(image).to_dict()
    return Product.from_dict(record)


def build_index(image_dir: str,
                output_dir: str,
                metadata_path: Optional[str] = None,
                category: Optional[str] = None) -> dict:
    """
    Build the catalog and signature index from a directory of images.

    Args:
        image_dir: Directory containing product images.
        output_dir: Directory to write catalog and index files.
        metadata_path: Optional JSON list of product records, each with
            a 'filename' field plus Product fields (id, name, price,
            brand, in_stock, rating, views, purchases, category). If not
            provided, every image in image_dir becomes a product whose id
            is the file name without extension.
        category: Category assigned to records that do not carry one.

    Returns:
        Dict with 'success', 'processed', 'vectors', 'dimensions',
        'errors' and 'index_path'.
    """
    os.makedirs(output_dir, exist_ok=True)

    if metadata_path and os.path.exists(metadata_path):
        with open(metadata_path, 'r', encoding='utf-8') as f:
            metadata = [e for e in json.load(f) if e.get('filename')]
    else:
        metadata = [
            {"filename": f, "id": os.path.splitext(f)[0], "name": os.path.splitext(f)[0]}
            for f in sorted(os.listdir(image_dir))
            if os.path.splitext(f)[1].lower() in IMAGE_EXTENSIONS
        ]

    records = []
    signatures = []
    processed = 0
    errors = 0

    logger.info(f"Building catalog from {len(metadata)} images in {image_dir}")

    for i, entry in enumerate(metadata):
        filepath = os.path.join(image_dir, entry['filename'])
        if not os.path.exists(filepath):
            logger.warning(f"Missing image: {entry['filename']}")
            errors += 1
            continue

        try:
            with open(filepath, 'rb') as f:
                image_bytes = f.read()

            fields = {k: v for k, v in entry.items() if k != 'filename'}
            fields.setdefault("id", os.path.splitext(entry['filename'])[0])
            if category and not fields.get("category"):
                fields["category"] = category

            product = featurize_product(fields, image_bytes)
            records.append(product.to_dict())
            signatures.append(color_signature(product.features))
            processed += 1

            if (i + 1) % 500 == 0:
                logger.info(f"Processed {i + 1}/{len(metadata)} images")

        except (DecodeError, OSError, ValueError) as e:
            logger.warning(f"Failed to process {entry['filename']}: {e}")
            errors += 1

    if not records:
        return {"success": False, "error": "No valid images processed", "errors": errors}

    sig_array = np.vstack(signatures).astype(np.float32)
    dim = sig_array.shape[1]

    if len(signatures) >= IVF_THRESHOLD:
        nlist = max(100, int(np.sqrt(len(signatures))))
        quantizer = faiss.IndexFlatL2(dim)
        index = faiss.IndexIVFFlat(quantizer, dim, nlist)
        index.train(sig_array)
        index.add(sig_array)
        logger.info(f"Built IVFFlat index: {nlist} clusters, {dim}d vectors")
    else:
        index = faiss.IndexFlatL2(dim)
        index.add(sig_array)
        logger.info(f"Built FlatL2 index: {dim}d vectors")

    faiss_path = os.path.join(output_dir, FAISS_FILE)
    faiss.write_index(index, faiss_path)

    np.save(os.path.join(output_dir, IDS_FILE), np.array([r["id"] for r in records]))

    with open(os.path.join(output_dir, CATALOG_FILE), 'w', encoding='utf-8') as f:
        json.dump(records, f, indent=2)

    logger.info(f"Catalog built: {processed} products, {dim}d signatures, {errors} errors")

    return {
        "success": True,
        "processed": processed,
        "vectors": len(signatures),
        "dimensions": dim,
        "errors": errors,
        "index_path": faiss_path,
    }
