"""Prompt engineering for the FragCoder shader assistant."""

SHADER_INPUTS = """\
uniform vec3 iResolution;          // viewport resolution (in pixels)
uniform float iTime;               // shader playback time (in seconds)
uniform float iTimeDelta;          // render time (in seconds)
uniform float iFrameRate;          // shader frame rate
uniform int iFrame;                // shader playback frame
uniform vec4 iDate;                // year, month, day, time in seconds
uniform vec4 iMouse;               // mouse pixel coords. xy: current (if MLB down), zw: click
uniform sampler2D BufferA;         // Buffer A texture
uniform sampler2D BufferB;         // Buffer B texture
uniform sampler2D BufferC;         // Buffer C texture
uniform sampler2D BufferD;         // Buffer D texture

void mainImage(out vec4 fragColor, in vec2 fragCoord) {
    // Your code here
}"""

RESPONSE_FORMAT = """\
Do not include the uniform definitions in your response. Do not include any comments in your code.

Respond with ONLY a valid JSON object in this exact format (no markdown, no code blocks, just raw JSON):
{
  "code": "void mainImage(out vec4 fragColor, in vec2 fragCoord) { ... your complete function code ... }",
  "explanation": "Brief 1-2 sentence explanation of what the shader does and how it works"
}"""

_INSTRUCTIONS = """\
You are an expert in coding beautiful GLSL fragment shaders.
The user may ask you to create a new shader or to augment their current shader. \
Infer based off the USER_PROMPT if they want a completely new shader or are requesting a modification.
If the user is asking to modify their existing shader, make sure to refer to the USER_CODE below.
If the user is asking for a completely new shader, ignore the USER_CODE section."""


def engineer_prompt(user_prompt: str, user_code: str | None = None) -> str:
    """Wrap a sanitized user prompt (and optional editor code) for the LLM."""
    return "\n".join([
        _INSTRUCTIONS,
        f'USER_PROMPT: "{user_prompt}"',
        f'USER_CODE: "{user_code or ""}"',
        "",
        "Here are the provided uniforms and the main function header as the shader entrypoint:",
        "",
        SHADER_INPUTS,
        "",
        RESPONSE_FORMAT,
    ])
