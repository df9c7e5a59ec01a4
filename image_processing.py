"""
Image processing functions for the ILSVRC accuracy evaluation tool.
"""
import cv2
import numpy as np

# Default crop used for ILSVRC validation images
DEFAULT_CENTRAL_CROP_FRACTION = 0.875

# Per-channel statistics (RGB order)
IMAGENET_MEAN = [0.485, 0.456, 0.406]
IMAGENET_STD = [0.229, 0.224, 0.225]

NORMALIZATIONS = ("imagenet", "inception", "none")


def read_image_bgr(image_path):
    """Decode an image file into a BGR uint8 array; raises RuntimeError if unreadable."""
    img = cv2.imread(image_path, cv2.IMREAD_COLOR)
    if img is None:
        raise RuntimeError(f"Failed to read image: {image_path}")
    return img


def central_crop(image, fraction):
    """Keep the central `fraction` of both height and width."""
    if not 0.0 < fraction <= 1.0:
        raise ValueError(f"central crop fraction must be in (0, 1], got {fraction}")
    if fraction == 1.0:
        return image
    h, w = image.shape[:2]
    crop_h = max(1, int(round(h * fraction)))
    crop_w = max(1, int(round(w * fraction)))
    y0 = (h - crop_h) // 2
    x0 = (w - crop_w) // 2
    return image[y0:y0 + crop_h, x0:x0 + crop_w]


def normalize(img_rgb, mode):
    """
    Convert an RGB uint8 image to float32 according to the normalization mode.

    Args:
        img_rgb (np.ndarray): HxWx3 uint8, RGB
        mode (str): 'imagenet' -> [0,1] then mean/std,
                    'inception' -> (x - 127.5) / 127.5,
                    'none' -> [0,1]

    Returns:
        np.ndarray: HxWx3 float32
    """
    img = img_rgb.astype(np.float32)
    if mode == "imagenet":
        img = img / 255.0
        m = np.array(IMAGENET_MEAN, dtype=np.float32).reshape(1, 1, 3)
        s = np.array(IMAGENET_STD, dtype=np.float32).reshape(1, 1, 3)
        return (img - m) / s
    if mode == "inception":
        return (img - 127.5) / 127.5
    if mode == "none":
        return img / 255.0
    raise ValueError(f"Unknown input normalization '{mode}', expected one of {NORMALIZATIONS}")


def ilsvrc_preprocess(raw_input_img, target_width, target_height,
                      central_crop_fraction=DEFAULT_CENTRAL_CROP_FRACTION,
                      normalization="imagenet", input_dtype=np.float32, layout="NCHW"):
    """
    Preprocess a decoded ILSVRC image for classification model input.

    Args:
        raw_input_img (np.ndarray): BGR image
        target_width (int)
        target_height (int)
        central_crop_fraction (float): fraction kept before resizing
        normalization (str): see normalize(); only applied to float inputs
        input_dtype: numpy dtype the model expects (float32, float16, uint8, int8)
        layout (str): 'NCHW' or 'NHWC'

    Returns:
        np.ndarray: [1,3,H,W] or [1,H,W,3] of input_dtype
    """
    img = central_crop(raw_input_img, central_crop_fraction)
    img = cv2.resize(img, (int(target_width), int(target_height)), interpolation=cv2.INTER_LINEAR)
    img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    dtype = np.dtype(input_dtype)
    if dtype == np.uint8:
        out = img
    elif dtype == np.int8:
        out = (img.astype(np.int16) - 128).astype(np.int8)
    else:
        out = normalize(img, normalization).astype(dtype)

    if layout == "NCHW":
        out = np.transpose(out, (2, 0, 1))
    return np.ascontiguousarray(out[None, ...])


def detect_layout(input_shape):
    """
    Heuristic for layout: NHWC if last dim is 3, NCHW otherwise (channel at index 1).
    Symbolic dims named like 'C'/'channels' count as the channel axis.
    """
    def _is_channel(dim):
        if isinstance(dim, str):
            return dim.upper() in ("C", "CHANNEL", "CHANNELS")
        return dim == 3

    if isinstance(input_shape, (list, tuple)) and len(input_shape) == 4:
        if _is_channel(input_shape[3]) and not _is_channel(input_shape[1]):
            return "NHWC"
    return "NCHW"


def spatial_size(input_shape, layout, default=(224, 224)):
    """Return (width, height) from a model input shape, falling back to default for symbolic dims."""
    if not isinstance(input_shape, (list, tuple)) or len(input_shape) != 4:
        return default
    if layout == "NHWC":
        h, w = input_shape[1], input_shape[2]
    else:
        h, w = input_shape[2], input_shape[3]
    if not isinstance(h, int) or not isinstance(w, int) or h <= 0 or w <= 0:
        return default
    return w, h


def topk_indices(scores, k):
    """Indices of the k highest scores, highest first; ties keep the lower index first."""
    arr = np.asarray(scores, dtype=np.float64).reshape(-1)
    order = np.argsort(-arr, kind="stable")
    return order[:k].astype(int).tolist()
