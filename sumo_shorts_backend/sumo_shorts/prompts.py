SCENARIO_SCHEMA = r"""{
  "title": "<short, catchy title>",
  "scenes": [
    {
      "text": "<narration for this scene, 1-2 short Japanese sentences>",
      "imagePrompt": "<what the illustration for this scene should show>"
    }
  ]
}"""


SCENARIO_PROMPT_TEMPLATE = """次のニュース記事から、縦型ショート動画用のシナリオを作成してください。

要件:
- タイトル（魅力的で短い）
- 5-7個のシーン
- 各シーンには、ナレーション用のテキストと画像生成用のプロンプトを含める

JSONフォーマットで出力してください：
{schema}"""


SCENARIO_CONTENT_BLOCK = """

## ニュース内容
"{content}..."
"""


READING_EXTRACTION_PROMPT = """あなたは大相撲の専門家です。以下のテキストから大相撲の力士名、親方名、理事長名などを全て抽出し、正確な読み仮名（ひらがな）を付けてJSON形式で返してください。

ルール:
1. 番付（横綱、大関、関脇、小結、前頭）は含めず、四股名のみを抽出する（「横綱大の里」→「大の里」）
2. 読み仮名は実際の大相撲で使われている読み方を使う（「大の里」は「おおのさと」、「安青錦」は「あおにしき」）
3. 理事長や親方の名前も含める
4. 見つからない場合は空のオブジェクト {{}} を返す

テキスト: {text}

出力形式:
{{
  "四股名（漢字のみ、番付なし）": "読み仮名（ひらがな）"
}}"""


HIRAGANA_SYSTEM_PROMPT = "あなたは日本語のテキストを平仮名に変換するアシスタントです。句読点はそのまま残してください。"

HIRAGANA_USER_TEMPLATE = "以下のテキストを平仮名に変換してください（句読点は残す）:\n{text}"
