"""
Status and documentation page served on GET.
"""

from html import escape

from .capabilities import Capabilities
from .config import ImageResizerConfig

_STYLE = """
body { font-family: sans-serif; background-color: #f4f4f5; margin: 0; color: #18181b; line-height: 1.6; }
h1 { background-color: #6366f1; color: white; padding: 20px; text-align: center; margin: 0; font-weight: 500; }
div.container { padding: 20px 30px 40px 30px; margin: 30px auto; max-width: 900px; background: white; border-radius: 0.5rem; }
h2 { border-bottom: 2px solid #e4e4e7; padding-bottom: 10px; margin-top: 30px; color: #4f46e5; font-weight: 500; }
pre, code { background-color: #f3f4f6; border-radius: 5px; font-family: monospace; }
pre { padding: 12px 15px; border: 1px solid #e5e7eb; white-space: pre-wrap; }
.error { color: #ef4444; font-weight: bold; }
.success { color: #22c55e; font-weight: bold; }
.status-list li { list-style-type: none; margin-bottom: 5px; }
"""


def _status_item(ok: bool, label: str, detail: str) -> str:
    css = "success" if ok else "error"
    icon = "&#9989;" if ok else "&#10060;"
    return f'<li class="{css}">{icon} <strong>{escape(label)}:</strong> {escape(detail)}</li>'


def render_status_page(
    capabilities: Capabilities,
    config: ImageResizerConfig,
    temp_writable: bool,
    endpoint_url: str,
) -> str:
    items = [
        _status_item(
            capabilities.core_codecs,
            "Pillow",
            f"Installed ({capabilities.pillow_version})" if capabilities.core_codecs
            else "JPEG/PNG codecs missing (required for image processing)",
        ),
        _status_item(
            capabilities.http_client,
            "httpx",
            "Installed" if capabilities.http_client else "Not installed (required for URL downloads)",
        ),
        _status_item(
            capabilities.webp_encode,
            "WebP output",
            "Supported" if capabilities.webp_encode else "Not supported by this Pillow build",
        ),
        _status_item(
            temp_writable,
            f"Temp dir ({config.temp_dir.name})",
            "Writable" if temp_writable else "Not writable",
        ),
    ]
    prerequisites_ok = capabilities.core_codecs and capabilities.http_client and temp_writable
    warning = "" if prerequisites_ok else (
        '<p class="error">Action required: fix the items marked above before sending images.</p>'
    )

    url = escape(endpoint_url)
    curl_example = escape(
        f"curl -X POST '{endpoint_url}' \\\n"
        "  -F \"image_url=https://www.python.org/static/img/python-logo.png\" \\\n"
        "  -F \"width=300\" \\\n"
        "  -F \"format=jpeg\" \\\n"
        "  -F \"quality=80\" \\\n"
        "  -F \"output_filename=python_logo_resized\" \\\n"
        "  -o python_logo_resized.jpeg"
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Image Resizer/Optimizer API</title>
<style>{_STYLE}</style>
</head>
<body>
<h1>Image Resizer/Optimizer API</h1>
<div class="container">
<p>Resizes and re-encodes an image given by URL or upload. Input is <strong>multipart/form-data</strong>.</p>
<p>On errors a log file (<code>image_resize_&lt;timestamp&gt;.log</code>) is written to <code>{escape(str(config.log_dir))}</code>.</p>

<h2>Server Status</h2>
<ul class="status-list">
{chr(10).join(items)}
</ul>
{warning}

<h2>API Usage</h2>
<p><code>POST {url}</code></p>
<ul>
<li><code>image_file</code>: the image to upload (or use <code>image_url</code>).</li>
<li><code>image_url</code>: URL of the image to process (or use <code>image_file</code>).</li>
<li><code>width</code>, <code>height</code>: target size in pixels (1-{config.max_dimension}). With only one of them the aspect ratio is kept.</li>
<li><code>quality</code>: 0-100, default {config.default_quality}. For PNG this sets the compression level.</li>
<li><code>format</code>: <code>jpeg</code>, <code>png</code> or <code>webp</code>. Default <code>{escape(config.default_format)}</code>.</li>
<li><code>output_filename</code>: base name of the returned file; the extension follows the format.</li>
</ul>
<p>The response body is the image, with <code>Content-Disposition: inline; filename="..."</code>.
Errors are returned as <code>{{"error": "..."}}</code>.</p>

<h2>Example</h2>
<pre>{curl_example}</pre>
</div>
</body>
</html>
"""
