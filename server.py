import sys
import traceback
from flask import Flask, request, jsonify

from ll1_parser import GrammarWorkflowManager

app = Flask(__name__)

HOST = '127.0.0.1'
PORT = 5000

# --- HTML Escape Helper ---
def escapeHtml(unsafe):
    if unsafe is None: return ''
    unsafe = str(unsafe)
    return unsafe.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;').replace('"', '&quot;').replace("'", '&#039;')

# --- Flask Endpoints ---

@app.route('/analyze-grammar', methods=['POST'])
def analyze_grammar():
    """
    Analyze a grammar and return its sets, predictive table and LL(1) verdict.

    A grammar that is not LL(1) is still analyzed; the collisions are
    reported alongside the table.
    """
    data = request.get_json(silent=True) or {}
    grammar_input = data.get('grammar')

    if not grammar_input:
        return jsonify({"error": "No grammar provided"}), 400

    try:
        print("--- Analyzing Grammar ---", file=sys.stderr)

        workflow_manager = GrammarWorkflowManager(grammar_input)
        result = workflow_manager.analyze_grammar()

        if result['success']:
            print("--- Grammar Analysis SUCCEEDED ---", file=sys.stderr)
            print(f"Found {len(result['rules'])} rules", file=sys.stderr)
            if not result['deterministic']:
                print(f"Collisions detected: {len(result['collisions'])}", file=sys.stderr)
            return jsonify(result)
        else:
            print("--- Grammar Analysis FAILED ---", file=sys.stderr)
            print(f"Error: {result['error']}", file=sys.stderr)
            return jsonify({
                "success": False,
                "error": result['error'],
                "error_type": result['error_type']
            }), 400

    except Exception as e:
        print(f"--- UNEXPECTED Python Error: {e} ---", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        error_message = f"Unexpected server error: {escapeHtml(str(e))}"
        return jsonify({"error": error_message, "error_type": "system_error"}), 500

@app.route('/parse-input', methods=['POST'])
def parse_input():
    """
    Parse an input string with an LL(1) grammar.

    Rejected input is a verdict, not an error: it is answered with
    ``accepted: false`` and the trace up to the failing step. Grammar
    errors, including collisions, are answered with 400.
    """
    data = request.get_json(silent=True) or {}
    grammar_input = data.get('grammar')
    string_input = data.get('input')

    if not grammar_input:
        return jsonify({"error": "No grammar provided"}), 400
    # The empty string is a legal input
    if string_input is None:
        return jsonify({"error": "No input string provided"}), 400

    try:
        workflow_manager = GrammarWorkflowManager(grammar_input)

        grammar_result = workflow_manager.analyze_grammar()
        if not grammar_result['success']:
            print("--- Grammar Analysis FAILED ---", file=sys.stderr)
            return jsonify({
                "success": False,
                "error": grammar_result['error'],
                "error_type": grammar_result['error_type']
            }), 400

        print(f"--- Parsing Input String: '{string_input}' ---", file=sys.stderr)
        parse_result = workflow_manager.parse_input_string(string_input)

        if not parse_result['success']:
            print("--- Parsing ABORTED ---", file=sys.stderr)
            print(f"Error: {parse_result['error']}", file=sys.stderr)
            return jsonify({
                "success": False,
                "error": parse_result['error'],
                "error_type": parse_result['error_type'],
                "collisionsHtml": grammar_result['collisions_html']
            }), 400

        if parse_result['accepted']:
            print("--- Parsing SUCCEEDED ---", file=sys.stderr)
        else:
            print("--- Input REJECTED ---", file=sys.stderr)
            print(f"Error: {parse_result['error']}", file=sys.stderr)

        response = {
            "success": True,
            "accepted": parse_result['accepted'],
            "parseTableHtml": grammar_result['parse_table_html'],
            "parseTraceHtml": parse_result['trace_html'],
            "traceSteps": parse_result['trace_steps'],
            "startSymbol": grammar_result['start_symbol']
        }
        if not parse_result['accepted']:
            response["error"] = parse_result['error']
            response["errorPosition"] = parse_result['error_position']
            response["errorHtml"] = parse_result['error_html']
        return jsonify(response)

    except Exception as e:
        print(f"--- UNEXPECTED Python Error: {e} ---", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        error_message = f"Unexpected server error: {escapeHtml(str(e))}"
        return jsonify({"error": error_message, "error_type": "system_error"}), 500

# --- Main Execution ---
if __name__ == '__main__':
    print("--- LL(1) Grammar Analyzer Server ---")
    print(f"Running on http://{HOST}:{PORT}")
    print("-" * 34)
    app.run(debug=True, host=HOST, port=PORT, use_reloader=False)
