"""Static batch submission form served at GET /app."""

FORM_HTML = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<title>Seedream Batch Runner</title>
<style>
body{margin:0;padding:40px;font-family:Segoe UI,Roboto,sans-serif;
  background:linear-gradient(135deg,#101820,#06131f);color:#f5f5f5;}
h1{text-align:center;color:#00bcd4;margin-bottom:30px;}
form{max-width:720px;margin:auto;background:rgba(255,255,255,0.05);padding:24px;
  border-radius:16px;box-shadow:0 8px 24px rgba(0,0,0,0.4);}
label{display:block;margin-top:14px;font-weight:600;color:#80deea;}
input,textarea,select{width:100%;padding:10px;margin-top:6px;border:none;border-radius:8px;
  background:rgba(255,255,255,0.1);color:#fff;font-size:14px;box-sizing:border-box;}
select option{color:#000;}
.row{display:flex;gap:10px;}
.row>div{flex:1;}
button{margin-top:20px;padding:14px;width:100%;border:none;border-radius:12px;
  background:#00bcd4;color:#fff;font-size:16px;font-weight:600;cursor:pointer;}
button:hover{background:#0097a7;}
#result{display:none;max-width:720px;margin:20px auto;}
#result pre{background:#000;padding:12px;border-radius:8px;white-space:pre-wrap;}
</style>
</head>
<body>
<h1>Seedream v4 Batch Runner</h1>
<form id="batchForm">
  <label>Prompt</label>
  <textarea name="prompt" rows="3" required placeholder="Describe your image..."></textarea>
  <label>Subject image URL (optional)</label>
  <input name="subjectUrl" type="url" placeholder="https://example.com/subject.png">
  <label>Reference image URLs (comma-separated, optional)</label>
  <input name="referenceUrls" type="text" placeholder="https://ref1.png, https://ref2.png">
  <div class="row">
    <div><label>Width</label><input name="width" type="number" value="1024" min="1"></div>
    <div><label>Height</label><input name="height" type="number" value="1024" min="1"></div>
  </div>
  <div class="row">
    <div><label>Batch count</label><input name="count" type="number" value="1" min="1" max="__MAX_COUNT__"></div>
    <div><label>Provider</label>
      <select name="provider">__PROVIDER_OPTIONS__</select>
    </div>
  </div>
  <button type="submit">Start Batch</button>
</form>
<div id="result"><pre>Submitting batch... please wait</pre></div>
<script>
const form = document.getElementById('batchForm');
const result = document.getElementById('result');
form.addEventListener('submit', async (e) => {
  e.preventDefault();
  result.style.display = 'block';
  result.firstElementChild.textContent = 'Submitting batch... please wait';
  const res = await fetch('/api/start-batch', {method: 'POST', body: new URLSearchParams(new FormData(form))});
  const json = await res.json();
  result.firstElementChild.textContent = JSON.stringify(json, null, 2);
});
</script>
</body>
</html>
"""


def render_form(providers: list[str], max_count: int) -> str:
    """Fill the provider dropdown and count limit into the form page."""
    options = "".join(f'<option value="{name}">{name}</option>' for name in providers)
    return FORM_HTML.replace("__PROVIDER_OPTIONS__", options).replace(
        "__MAX_COUNT__", str(max_count)
    )
